"""Tests for the auth lifespan hook."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from tripgate.foundation.domain.principal import TokenStrategy
from tripgate.infra.auth.delegation import GraphClient, OnBehalfOfClient
from tripgate.infra.auth.lifespan import _auth_lifespan, lifespan_contribution
from tripgate.infra.auth.session import SessionTokenIssuer
from tripgate.infra.auth.settings import AuthSettings

SECRET = "test-session-secret-0123456789abcdef"


def _app() -> MagicMock:
    app = MagicMock()
    app.state = SimpleNamespace()
    return app


@pytest.mark.unit
class TestAuthLifespan:
    @pytest.mark.asyncio(loop_scope="function")
    async def test_builds_session_collaborators(self) -> None:
        app = _app()
        settings = AuthSettings(_env_file=None, session_secret=SECRET)
        with patch("tripgate.infra.auth.lifespan.get_auth_settings", return_value=settings):
            async with _auth_lifespan(app):
                assert set(app.state.token_verifiers) == {TokenStrategy.LOCAL_SESSION}
                assert isinstance(app.state.session_issuer, SessionTokenIssuer)
                assert app.state.auth_settings is settings
        assert not hasattr(app.state, "obo_client")

    @pytest.mark.asyncio(loop_scope="function")
    async def test_delegation_clients_when_configured(self) -> None:
        app = _app()
        settings = AuthSettings(
            _env_file=None,
            session_secret=SECRET,
            graph_audience="api://tripgate",
            graph_client_id="client",
            graph_client_secret="secret",
        )
        with patch("tripgate.infra.auth.lifespan.get_auth_settings", return_value=settings):
            async with _auth_lifespan(app):
                assert isinstance(app.state.obo_client, OnBehalfOfClient)
                assert isinstance(app.state.graph_client, GraphClient)
                assert TokenStrategy.DELEGATED in app.state.token_verifiers

    @pytest.mark.asyncio(loop_scope="function")
    async def test_invalid_configuration_stops_startup(self) -> None:
        settings = AuthSettings(_env_file=None, session_secret="too-short")
        with (
            patch("tripgate.infra.auth.lifespan.get_auth_settings", return_value=settings),
            pytest.raises(ValueError, match="at least 32"),
        ):
            async with _auth_lifespan(_app()):
                pass

    def test_contribution_priority(self) -> None:
        assert lifespan_contribution.priority == 100
