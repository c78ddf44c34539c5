"""HTTP surface tests: CORS handling, the status catch-all and account deletion."""

from __future__ import annotations

import pytest
from app.api.routes.status import RUNNING_MESSAGE
from app.core.exceptions import global_exception_handler
from app.core.middleware import OpenCorsMiddleware, RequestLoggingMiddleware
from app.main import app
from fastapi import FastAPI
from fastapi.testclient import TestClient
from firebase_admin import auth


@pytest.fixture
def client():
  # No context manager: the lifespan (Firebase, listeners) is not started.
  return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def auth_calls(monkeypatch):
  calls: dict[str, list[str]] = {"lookup": [], "delete": []}

  def _get_user_by_email(email):
    calls["lookup"].append(email)
    if email == "ghost@example.com":
      raise auth.UserNotFoundError("No user record found for the provided email")
    if email == "broken@example.com":
      raise RuntimeError("Auth backend unavailable")
    return type("UserRecord", (), {"uid": f"uid-{email.split('@')[0]}"})()

  monkeypatch.setattr("app.services.accounts.auth.get_user_by_email", _get_user_by_email)
  monkeypatch.setattr("app.services.accounts.auth.delete_user", lambda uid: calls["delete"].append(uid))
  return calls


@pytest.mark.parametrize("path", ["/", "/delete-user", "/anything/else"])
def test_options_returns_empty_204_with_cors_headers(client, path):
  response = client.options(path)

  assert response.status_code == 204
  assert response.content == b""
  assert response.headers["access-control-allow-origin"] == "*"
  assert response.headers["access-control-allow-methods"] == "POST, OPTIONS, GET"
  assert response.headers["access-control-allow-headers"] == "Content-Type"


@pytest.mark.parametrize("path", ["/", "/health", "/delete-user"])
def test_get_reports_service_running(client, path):
  response = client.get(path)

  assert response.status_code == 200
  assert response.text == RUNNING_MESSAGE
  assert response.headers["access-control-allow-origin"] == "*"
  assert "x-request-id" in response.headers


def test_delete_user_deletes_existing_account(client, auth_calls):
  response = client.post("/delete-user", json={"email": "ada@example.com"})

  assert response.status_code == 200
  assert response.json() == {"success": True, "message": "User deleted from Auth"}
  assert response.headers["access-control-allow-origin"] == "*"
  assert auth_calls == {"lookup": ["ada@example.com"], "delete": ["uid-ada"]}


def test_delete_user_treats_missing_account_as_success(client, auth_calls):
  response = client.post("/delete-user", json={"email": "ghost@example.com"})

  assert response.status_code == 200
  assert response.json() == {"success": True, "message": "User already deleted"}
  assert auth_calls["delete"] == []


@pytest.mark.parametrize("body", [{}, {"email": ""}, {"email": None}])
def test_delete_user_requires_email(client, auth_calls, body):
  response = client.post("/delete-user", json=body)

  assert response.status_code == 500
  assert response.json() == {"success": False, "error": "Email is required"}
  assert auth_calls["lookup"] == []


def test_delete_user_reports_malformed_json(client, auth_calls):
  response = client.post("/delete-user", content=b"{not json", headers={"content-type": "application/json"})

  assert response.status_code == 500
  assert response.json()["success"] is False
  assert response.json()["error"]


def test_delete_user_reports_auth_failures(client, auth_calls):
  response = client.post("/delete-user", json={"email": "broken@example.com"})

  assert response.status_code == 500
  assert response.json() == {"success": False, "error": "Auth backend unavailable"}


def test_unhandled_errors_keep_cors_and_request_id():
  failing_app = FastAPI()
  failing_app.add_exception_handler(Exception, global_exception_handler)
  failing_app.add_middleware(OpenCorsMiddleware)
  failing_app.add_middleware(RequestLoggingMiddleware)

  @failing_app.get("/explode")
  async def _explode():
    raise RuntimeError("unexpected")

  response = TestClient(failing_app, raise_server_exceptions=False).get("/explode")

  assert response.status_code == 500
  assert response.headers["access-control-allow-origin"] == "*"
  assert response.headers["access-control-allow-headers"] == "Content-Type"
  assert response.json()["detail"] == "Internal Server Error"
  assert response.headers["x-request-id"] == response.json()["requestId"]
