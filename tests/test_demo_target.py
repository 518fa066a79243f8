"""Tests for the demo target service."""

import pytest
from fastapi.testclient import TestClient

from loadrig.demo_target import SERVICE_NAME, create_app


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("SLOW_SECONDS", "0")
    monkeypatch.setenv("USER_LOOKUP_MS", "0")
    return TestClient(create_app())


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": SERVICE_NAME}


def test_index_lists_endpoints(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "/calculate/divide" in response.text


def test_add(client):
    response = client.post("/calculate/add", json={"a": 10, "b": 20})
    assert response.status_code == 200
    assert response.json() == {"result": 30.0, "operation": "addition"}


def test_divide(client):
    response = client.post("/calculate/divide", json={"a": 10, "b": 4})
    assert response.status_code == 200
    assert response.json()["result"] == 2.5


def test_divide_by_zero(client):
    response = client.post("/calculate/divide", json={"a": 100, "b": 0})
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot divide by zero"


def test_invalid_payload(client):
    response = client.post("/calculate/add", json={"a": "x"})
    assert response.status_code == 422


def test_simulated_error(client):
    response = client.get("/simulate/error")
    assert response.status_code == 500


def test_slow(client):
    response = client.get("/simulate/slow")
    assert response.status_code == 200
    assert response.json()["duration_seconds"] == 0.0


def test_user_lookup(client):
    response = client.get("/user/42")
    assert response.json() == {"id": 42, "name": "User 42", "email": "user42@example.com"}
