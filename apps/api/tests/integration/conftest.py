import time

import pytest

from courier_dispatch.auth.jwt import issue_jwt
from courier_dispatch.config import settings


@pytest.fixture
def auth_headers():
    def _headers(role: str, sub: str) -> dict[str, str]:
        token = issue_jwt({"sub": sub, "role": role}, settings.jwt_secret)
        return {"Authorization": f"Bearer {token}"}

    return {
        "customer": _headers("CUSTOMER", "customer-1"),
        "other_customer": _headers("CUSTOMER", "customer-2"),
        "courier_a": _headers("COURIER", "courier-a"),
        "courier_b": _headers("COURIER", "courier-b"),
        "admin": _headers("ADMIN", "admin-1"),
    }


@pytest.fixture
def onboard_courier(client, auth_headers):
    """Register, approve and bring a courier online through the API."""

    def _onboard(key: str, working_areas: list[str]) -> dict:
        user_id = key.replace("_", "-")
        registered = client.post(
            "/api/v1/couriers",
            json={"user_id": user_id, "name": user_id, "working_areas": working_areas},
            headers=auth_headers[key],
        )
        assert registered.status_code == 201, registered.text
        courier_id = registered.json()["id"]

        approved = client.post(f"/api/v1/couriers/{courier_id}/approve", headers=auth_headers["admin"])
        assert approved.status_code == 200

        online = client.post(
            f"/api/v1/couriers/{courier_id}/availability",
            json={"is_available": True},
            headers=auth_headers[key],
        )
        assert online.status_code == 200, online.text
        return online.json()

    return _onboard


@pytest.fixture
def wait_for_offer(notifier):
    def _wait(courier_id: str, timeout_s: float = 3.0) -> None:
        deadline = time.monotonic() + timeout_s
        while courier_id not in notifier.recipients():
            if time.monotonic() > deadline:
                raise AssertionError(f"courier {courier_id} was never offered the order")
            time.sleep(0.01)

    return _wait
