"""Tests for the HTTP routes."""

from datetime import date

import pytest
from fastapi.testclient import TestClient

import api
from errors import InvalidIdentity
from tests.fixtures.common import OWNER


@pytest.fixture
def client():
    return TestClient(api.app)


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "online"


def test_wallet_analytics_post(client, monkeypatch):
    received = {}

    async def fake_analytics(raw_input, chain, **kwargs):
        received.update(raw_input=raw_input, chain=chain, **kwargs)
        return {"success": True, "address": raw_input, "transactionCount": 4}

    monkeypatch.setattr(api, "get_wallet_analytics", fake_analytics)

    response = client.post("/api/wallet", json={"addressOrName": "vitalik.eth", "chain": "ethereum"})

    assert response.status_code == 200
    assert response.json()["transactionCount"] == 4
    assert received["raw_input"] == "vitalik.eth"
    assert received["chain"] == "ethereum"
    assert received["price_cache"] is api.price_cache


def test_wallet_analytics_requires_input(client):
    response = client.post("/api/wallet", json={"addressOrName": ""})

    assert response.status_code == 422


def test_analyze_returns_failure_payload(client, monkeypatch):
    async def fake_analytics(raw_input, chain, **kwargs):
        return {"success": False, "address": raw_input, "error": "bad input"}

    monkeypatch.setattr(api, "get_wallet_analytics", fake_analytics)

    response = client.get("/analyze/not-an-address")

    assert response.status_code == 200
    assert response.json() == {"success": False, "address": "not-an-address", "error": "bad input"}


def test_streak_requires_address(client):
    response = client.get("/api/streak")

    assert response.status_code == 400
    assert "address" in response.json()["detail"]


def test_streak_invalid_identity(client, monkeypatch):
    async def fake_streak(*args, **kwargs):
        raise InvalidIdentity("Input must be a non-empty string matching a supported address or name format")

    monkeypatch.setattr(api, "get_streak_data", fake_streak)

    response = client.get("/api/streak", params={"address": "nope"})

    assert response.status_code == 400


def test_streak_passes_date_range(client, monkeypatch):
    received = {}

    async def fake_streak(address, chain, start=None, end=None, **kwargs):
        received.update(address=address, chain=chain, start=start, end=end)
        return {
            "success": True,
            "address": address,
            "dailyActivity": {"2024-01-01": 2},
            "currentStreak": 0,
            "longestStreak": 1,
            "totalActiveDays": 1,
        }

    monkeypatch.setattr(api, "get_streak_data", fake_streak)

    response = client.get("/api/streak", params={
        "address": OWNER, "chain": "optimism", "start": "2024-01-01", "end": "2024-12-31"
    })

    assert response.status_code == 200
    assert response.json()["dailyActivity"] == {"2024-01-01": 2}
    assert received == {"address": OWNER, "chain": "optimism", "start": date(2024, 1, 1), "end": date(2024, 12, 31)}


def test_streak_unexpected_error(client, monkeypatch):
    async def fake_streak(*args, **kwargs):
        raise RuntimeError("indexer exploded")

    monkeypatch.setattr(api, "get_streak_data", fake_streak)

    response = client.get("/api/streak", params={"address": OWNER})

    assert response.status_code == 500


def test_eth_price(client, monkeypatch):
    async def fake_price(**kwargs):
        return 3210.5

    monkeypatch.setattr(api, "get_eth_price", fake_price)

    response = client.get("/api/eth-price")

    assert response.status_code == 200
    assert response.json() == {"ethPrice": 3210.5}
