# tests/helpers.py

from __future__ import annotations

from fastapi.testclient import TestClient

from task_manager.core.auth import CurrentUser
from task_manager.models import User


def as_caller(user: User) -> CurrentUser:
    return CurrentUser.from_user(user)


def register(client: TestClient, name: str = "Alice", email: str = "alice@example.com",
             password: str = "secret123") -> str:
    response = client.post("/api/register", json={
        "name": name,
        "email": email,
        "password": password,
        "password_confirmation": password,
    })
    assert response.status_code == 201, response.text
    return response.json()["token"]


def login(client: TestClient, email: str, password: str = "secret123") -> str:
    response = client.post("/api/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["token"]


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
