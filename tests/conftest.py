from __future__ import annotations

import pathlib
import sys

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from main import create_app  # noqa: E402


@pytest.fixture()
def collection():
    # A fresh in-memory server per test
    return AsyncMongoMockClient()["expense_tracker_test"]["expenses"]


@pytest.fixture()
def client(collection):
    with TestClient(create_app(collection=collection)) as test_client:
        yield test_client


@pytest.fixture()
def make_expense(client):
    def _make(**overrides):
        payload = {"description": "Coffee", "category": "Food", "amount": 4.95}
        payload.update(overrides)
        response = client.post("/api/expenses", json=payload)
        assert response.status_code == 201, response.json()
        return response.json()["data"]

    return _make
