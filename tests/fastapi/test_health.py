"""Unit tests for the /healthz endpoint."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from tripgate.infra.fastapi._health import router as health_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


def _database(fail: Exception | None = None) -> MagicMock:
    conn = MagicMock()
    conn.execute = AsyncMock(side_effect=fail)

    @asynccontextmanager
    async def connect() -> AsyncIterator[MagicMock]:
        yield conn

    database = MagicMock()
    database.get_engine.return_value.connect = connect
    return database


def _client(database: MagicMock | None) -> TestClient:
    app = FastAPI()
    app.include_router(health_router)
    if database is not None:
        app.state.database = database
    return TestClient(app)


@pytest.mark.unit
class TestHealthz:
    def test_ok(self) -> None:
        response = _client(_database()).get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "checks": {"database": {"status": "ok"}}}

    def test_database_unreachable(self) -> None:
        error = OperationalError("SELECT 1", {}, Exception("connection refused"))

        response = _client(_database(fail=error)).get("/healthz")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "degraded"
        assert body["checks"]["database"] == {"status": "error", "detail": "OperationalError"}

    def test_database_not_initialized(self) -> None:
        response = _client(None).get("/healthz")

        assert response.status_code == 503
        assert response.json()["checks"]["database"]["detail"] == "database not initialized"
