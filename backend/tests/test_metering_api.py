from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any

import pytest
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

import backend.main as backend_main
from backend.app.metering import (
    Entitlement,
    EntitlementLookupFailed,
    MeteringService,
    Tier,
)
from backend.app.metering.repository import InMemoryEntitlementRepository
from backend.app.routes import metering as metering_routes
from backend.app.schemas.metering import DeductTalkTimeResponse, TalkTimeResponse


class NullEventLogger:
    def log(self, event) -> None:
        pass


class FakeRequest:
    def __init__(self, body: Any) -> None:
        self._body = body

    async def json(self) -> Any:
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


@pytest.fixture
def repository() -> InMemoryEntitlementRepository:
    return InMemoryEntitlementRepository(
        [
            Entitlement(id="silver-1", user_id="42", tier=Tier.SILVER, remaining_seconds=10),
            Entitlement(id="a1", user_id="42", tier=Tier.ADD_ON, remaining_seconds=100),
            Entitlement(id="free-1", user_id="42", tier=Tier.FREE, remaining_seconds=5),
        ]
    )


@pytest.fixture
def service(monkeypatch, repository) -> MeteringService:
    metering_service = MeteringService(repository=repository, event_logger=NullEventLogger())
    monkeypatch.setattr(metering_routes, "get_metering_service", lambda: metering_service)
    return metering_service


def _deduct(body: Any, user_id: str = "42"):
    return asyncio.run(
        metering_routes.deduct_talk_time(FakeRequest(body), current_user=SimpleNamespace(id=user_id))
    )


def _json(response: JSONResponse) -> dict:
    return json.loads(response.body)


def test_get_talk_time_returns_breakdown(service):
    response = metering_routes.get_talk_time(current_user=SimpleNamespace(id="42"))

    assert isinstance(response, TalkTimeResponse)
    assert response.user_id == "42"
    assert response.total_talk_time_seconds == 110
    assert set(response.active_subscriptions) == {"silver", "add_on_a1"}


def test_get_talk_time_store_failure_returns_500(monkeypatch):
    class BrokenService:
        def get_active_balance(self, user_id: str):
            raise EntitlementLookupFailed()

    monkeypatch.setattr(metering_routes, "get_metering_service", lambda: BrokenService())

    response = metering_routes.get_talk_time(current_user=SimpleNamespace(id="42"))

    assert response.status_code == 500
    assert _json(response)["error"] == "entitlement_lookup_failed"


def test_deduct_returns_plan_and_remaining(service, repository):
    response = _deduct({"secondsToDeduct": 12})

    assert isinstance(response, DeductTalkTimeResponse)
    assert response.seconds_deducted == 12
    assert [(entry.entitlement_id, entry.seconds_deducted) for entry in response.deductions] == [
        ("silver-1", 10),
        ("a1", 2),
    ]
    assert response.talk_time_remaining["add_on_a1"].seconds == 98
    assert "silver" not in response.talk_time_remaining
    body = response.model_dump(by_alias=True, mode="json")
    assert body["secondsDeducted"] == 12
    assert body["deductions"][0] == {
        "entitlementId": "silver-1",
        "tier": "silver",
        "secondsDeducted": 10,
        "newBalance": 0,
    }


def test_deduct_insufficient_balance_returns_400_with_diagnostics(service, repository):
    response = _deduct({"secondsToDeduct": 500})

    assert response.status_code == 400
    payload = _json(response)
    assert payload["error"] == "insufficient_talk_time"
    assert payload["secondsRequested"] == 500
    assert payload["secondsAvailable"] == 110
    assert [entry["entitlementId"] for entry in payload["deductions"]] == ["silver-1", "a1"]
    assert repository.get("silver-1").remaining_seconds == 10


@pytest.mark.parametrize(
    "body",
    [
        {"secondsToDeduct": -5},
        {"secondsToDeduct": "ten"},
        {"secondsToDeduct": 2.5},
        {},
        [1, 2],
        json.JSONDecodeError("Expecting value", "", 0),
    ],
)
def test_deduct_invalid_input_returns_400(service, repository, body):
    response = _deduct(body)

    assert response.status_code == 400
    assert _json(response)["error"] in {"invalid_seconds_to_deduct", "invalid_request_body"}
    assert repository.get("a1").remaining_seconds == 100


def test_deduct_ignores_unknown_body_fields(service, repository):
    response = _deduct({"secondsToDeduct": 5, "sessionId": "abc"})

    assert response.seconds_deducted == 5
    assert repository.get("silver-1").remaining_seconds == 5


def test_http_endpoints_require_bearer_token(service):
    client = TestClient(backend_main.app)

    assert client.get("/metering/talk-time").status_code == 401
    assert client.post("/metering/deduct-talk-time", json={"secondsToDeduct": 1}).status_code == 401
    assert (
        client.get("/metering/talk-time", headers={"Authorization": "Bearer not-a-token"}).status_code == 401
    )


def test_http_deduct_round_trip(service):
    client = TestClient(backend_main.app)
    headers = {"Authorization": f"Bearer {backend_main.create_access_token(subject='42')}"}

    deduct = client.post("/metering/deduct-talk-time", json={"secondsToDeduct": 4}, headers=headers)
    balance = client.get("/metering/talk-time", headers=headers)

    assert deduct.status_code == 200
    assert deduct.json()["userId"] == "42"
    assert deduct.json()["deductions"][0]["newBalance"] == 6
    assert balance.status_code == 200
    assert balance.json()["totalTalkTimeSeconds"] == 106
    assert balance.json()["activeSubscriptions"]["silver"]["seconds"] == 6


def test_http_malformed_json_is_a_client_error(service):
    client = TestClient(backend_main.app)
    headers = {
        "Authorization": f"Bearer {backend_main.create_access_token(subject='42')}",
        "Content-Type": "application/json",
    }

    response = client.post("/metering/deduct-talk-time", content=b"{not json", headers=headers)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request_body"


def test_health_endpoint():
    client = TestClient(backend_main.app)

    assert client.get("/health").json() == {"status": "ok"}
