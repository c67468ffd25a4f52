"""Unit tests for contribution types and entry-point discovery."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from tripgate.foundation.application import (
    ErrorHandlerContribution,
    LifespanContribution,
    MiddlewareContribution,
    by_priority,
    discover,
)


def _entry_point(name: str, value: object = None, *, broken: bool = False) -> MagicMock:
    ep = MagicMock()
    ep.name = name
    ep.dist.name = "tripgate"
    if broken:
        ep.load.side_effect = ImportError("missing dependency")
    else:
        ep.load.return_value = value
    return ep


@pytest.mark.unit
class TestMiddlewareContribution:
    @pytest.mark.parametrize("priority", [-1, 500])
    def test_priority_bounds(self, priority: int) -> None:
        with pytest.raises(ValueError, match="priority"):
            MiddlewareContribution(middleware_class=object, priority=priority)

    def test_defaults(self) -> None:
        contribution = MiddlewareContribution(middleware_class=object)
        assert contribution.priority == 400
        assert contribution.kwargs == {}


@pytest.mark.unit
class TestLifespanContribution:
    def test_rejects_non_callable_hook(self) -> None:
        with pytest.raises(TypeError, match="not callable"):
            LifespanContribution(hook="startup")

    def test_rejects_negative_priority(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            LifespanContribution(hook=MagicMock(), priority=-5)

    def test_wrap_bare_hook(self) -> None:
        hook = MagicMock()
        wrapped = LifespanContribution.wrap(hook)
        assert wrapped.hook is hook
        assert wrapped.priority == 500

    def test_wrap_keeps_contribution(self) -> None:
        contribution = LifespanContribution(hook=MagicMock(), priority=75)
        assert LifespanContribution.wrap(contribution) is contribution

    def test_error_handler_must_be_callable(self) -> None:
        with pytest.raises(TypeError, match="KeyError"):
            ErrorHandlerContribution(exception_class=KeyError, handler=None)


@pytest.mark.unit
class TestByPriority:
    def test_ascending_and_stable(self) -> None:
        hooks = [
            LifespanContribution(hook=MagicMock(name="access"), priority=120),
            LifespanContribution(hook=MagicMock(name="auth"), priority=100),
            LifespanContribution(hook=MagicMock(name="identity"), priority=110),
            LifespanContribution(hook=MagicMock(name="auth-extra"), priority=100),
        ]

        ordered = by_priority(hooks)

        assert [h.priority for h in ordered] == [100, 100, 110, 120]
        assert ordered[0] is hooks[1]
        assert ordered[1] is hooks[3]


@pytest.mark.unit
class TestDiscover:
    def test_loads_group(self) -> None:
        eps = [_entry_point("health", "router-a"), _entry_point("identity", "router-b")]
        with patch(
            "tripgate.foundation.application.discovery.entry_points", return_value=eps
        ) as found:
            result = discover("tripgate.routers")

        found.assert_called_once_with(group="tripgate.routers")
        assert [(c.name, c.value) for c in result] == [
            ("health", "router-a"),
            ("identity", "router-b"),
        ]
        assert all(c.group == "tripgate.routers" for c in result)

    def test_excluded_names_are_not_loaded(self) -> None:
        skipped = _entry_point("delegation", "router")
        with patch(
            "tripgate.foundation.application.discovery.entry_points", return_value=[skipped]
        ):
            assert discover("tripgate.routers", exclude_names=frozenset({"delegation"})) == []
        skipped.load.assert_not_called()

    def test_broken_entry_point_is_skipped(self) -> None:
        eps = [_entry_point("broken", broken=True), _entry_point("health", "router")]
        with patch("tripgate.foundation.application.discovery.entry_points", return_value=eps):
            result = discover("tripgate.routers")

        assert [c.name for c in result] == ["health"]

    def test_wrong_type_is_dropped(self) -> None:
        contribution = MiddlewareContribution(middleware_class=object)
        eps = [_entry_point("plain", "not-a-contribution"), _entry_point("auth", contribution)]
        with patch("tripgate.foundation.application.discovery.entry_points", return_value=eps):
            result = discover("tripgate.middleware", expect=MiddlewareContribution)

        assert [c.value for c in result] == [contribution]
        assert result[0].distribution == "tripgate"
