"""Unit tests for the request-scoped principal context."""

from __future__ import annotations

from uuid import uuid4

import pytest

from tripgate.foundation.application.context import (
    NoRequestContextError,
    clear_principal_context,
    get_current_principal,
    get_optional_principal,
    set_principal_context,
)
from tripgate.foundation.domain.principal import Principal


@pytest.mark.unit
class TestPrincipalContext:
    def test_outside_request(self) -> None:
        assert get_optional_principal() is None
        with pytest.raises(NoRequestContextError):
            get_current_principal()

    def test_set_and_clear(self) -> None:
        principal = Principal(subject="s", user_id=uuid4(), email="a@b.co")
        token = set_principal_context(principal)
        try:
            assert get_current_principal() is principal
        finally:
            clear_principal_context(token)
        assert get_optional_principal() is None
