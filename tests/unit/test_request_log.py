"""Unit tests for the request logging middleware."""

import logging

from httpx import AsyncClient

from src.cm_gateway.middleware.request_log import _level_for


def test_log_levels() -> None:
    assert _level_for("/api/v1/trade-offers", 200) == logging.INFO
    assert _level_for("/api/v1/trade-offers", 422) == logging.INFO
    assert _level_for("/health", 200) == logging.DEBUG
    assert _level_for("/health", 503) == logging.WARNING


async def test_generates_request_id(client: AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.headers["X-Request-ID"].startswith("req_")


async def test_echoes_caller_request_id(client: AsyncClient) -> None:
    resp = await client.get("/health", headers={"X-Request-ID": "trace-42"})
    assert resp.headers["X-Request-ID"] == "trace-42"
