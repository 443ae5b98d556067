"""Tests for the HTTP layer."""

import json
import logging

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from expense_sync.config import AppSettings
from expense_sync.orchestrator import SyncFlow
from expense_sync.queries import QueryExecutor
from expense_sync.services.storage import CsvLedgerStorage

from tests.helpers import build_expense, raw_expense, run_async, write_ledger


@pytest.fixture
def stores(tmp_path) -> dict:
    prod = CsvLedgerStorage(tmp_path / "expenses.csv")
    dev = CsvLedgerStorage(tmp_path / "expenses-dev.csv")
    prod.init_ledger()
    dev.init_ledger()
    return {False: prod, True: dev}


@pytest.fixture
def client(stores) -> TestClient:
    def factory(dev: bool):
        storage = stores[dev]
        return SyncFlow(storage), QueryExecutor(storage), storage

    app = create_app(
        settings=AppSettings(max_request_size_mb=1, log_json=False),
        components_factory=factory,
    )
    return TestClient(app)


class TestPlumbing:
    """Tests for middleware behavior shared by every route."""

    def test_hello(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == "Hello!"

    def test_no_store(self, client):
        assert client.get("/").headers["cache-control"] == "no-store"
        assert client.get("/expenses").headers["cache-control"] == "no-store"

    def test_cors_allows_any_origin(self, client):
        response = client.get("/", headers={"Origin": "https://example.org"})
        assert response.headers["access-control-allow-origin"] == "*"

    def test_cors_preflight(self, client):
        response = client.options(
            "/expenses/sync",
            headers={
                "Origin": "https://example.org",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert response.status_code == 200

    def test_large_response_is_gzipped(self, client, stores):
        write_ledger(stores[False], [
            build_expense(id=f"e{i:04d}", label="groceries") for i in range(200)
        ])
        response = client.get("/expenses", headers={"Accept-Encoding": "gzip"})
        assert response.status_code == 200
        assert response.headers["content-encoding"] == "gzip"
        assert len(response.json()) == 200

    def test_oversized_body_rejected(self, client):
        body = json.dumps({"expenses": [raw_expense(label="x" * 1024)] * 1100})
        response = client.post(
            "/expenses/sync",
            content=body,
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 413


class TestExpenseRoutes:
    """Tests for reading and syncing expenses."""

    def test_get_expenses(self, client, stores):
        write_ledger(stores[False], [build_expense(id="a", amount="-12.5")])
        response = client.get("/expenses")
        assert response.status_code == 200
        assert response.json() == [{
            "id": "a",
            "date": "2024-03-01",
            "amount": -12.5,
            "category": "food",
            "label": "",
            "periodicity": "one-time",
            "checked": False,
            "deleted": False,
            "updatedAt": "2024-03-01T09:00:00.000Z",
        }]

    def test_dev_flag_selects_dev_ledger(self, client, stores):
        write_ledger(stores[True], [build_expense(id="dev-only")])

        assert client.get("/expenses").json() == []
        assert [e["id"] for e in client.get("/expenses?dev=true").json()] == ["dev-only"]

    def test_sync_new_record(self, client, stores):
        write_ledger(stores[False], [build_expense(id="a")])

        response = client.post("/expenses/sync", json={"expenses": [
            raw_expense(id="a", label=""),
            raw_expense(id="b", updatedAt="2024-03-02T09:00:00.000Z"),
        ]})

        assert response.status_code == 200
        assert response.json() == {"expenses": []}
        assert {e.id for e in run_async(stores[False].load_all())} == {"a", "b"}

    def test_sync_returns_server_delta(self, client, stores):
        write_ledger(stores[False], [build_expense(id="s")])
        response = client.post("/expenses/sync", json={"expenses": []})
        assert [e["id"] for e in response.json()["expenses"]] == ["s"]

    def test_sync_drops_invalid_records(self, client, stores):
        response = client.post("/expenses/sync", json={"expenses": [
            raw_expense(id="ok"),
            {"id": "broken"},
        ]})
        assert response.status_code == 200
        assert [e.id for e in run_async(stores[False].load_all())] == ["ok"]

    def test_sync_dev_does_not_touch_prod(self, client, stores):
        client.post("/expenses/sync?dev=true", json={"expenses": [raw_expense(id="d")]})
        assert run_async(stores[False].load_all()) == []
        assert [e.id for e in run_async(stores[True].load_all())] == ["d"]

    def test_sync_requires_expenses_key(self, client):
        response = client.post("/expenses/sync", json={})
        assert response.status_code == 422

    def test_storage_failure_is_500(self, client, stores):
        stores[False].path.write_text("broken\n", encoding="utf-8")
        response = client.post("/expenses/sync", json={"expenses": []})
        assert response.status_code == 500
        assert "Unexpected ledger header" in response.json()["detail"]

    def test_get_expenses_failure_is_500(self, client, stores):
        stores[False].path.unlink()
        response = client.get("/expenses")
        assert response.status_code == 500
        assert "not found" in response.json()["detail"]


class TestPassthroughRoutes:
    """Tests for query, mutate and schema routes."""

    def test_query(self, client, stores):
        write_ledger(stores[False], [
            build_expense(id="a", amount="-10"),
            build_expense(id="b", amount="-20"),
        ])
        response = client.post(
            "/expenses/query",
            json={"query": "SELECT id FROM %expenses% ORDER BY id"},
        )
        assert response.status_code == 200
        assert response.json() == [{"id": "a"}, {"id": "b"}]

    def test_bad_query_is_500(self, client):
        response = client.post("/expenses/query", json={"query": "SELECT FROM"})
        assert response.status_code == 500
        assert "Query failed" in response.json()["detail"]

    def test_mutate(self, client, stores):
        write_ledger(stores[False], [build_expense(id="a")])
        response = client.post("/expenses/mutate", json={
            "statements": ["UPDATE %expenses% SET checked = 1 WHERE id = 'a'"],
        })
        assert response.status_code == 200
        assert run_async(stores[False].load_all())[0].checked is True
        assert stores[False].backup_path.exists()

    def test_failed_mutate_is_500(self, client, stores):
        write_ledger(stores[False], [build_expense(id="a")])
        before = stores[False].path.read_bytes()
        response = client.post("/expenses/mutate", json={"statements": ["DROP TABLE nope"]})
        assert response.status_code == 500
        assert stores[False].path.read_bytes() == before

    def test_schema(self, client):
        response = client.get("/schema")
        assert response.status_code == 200
        columns = response.json()
        assert columns[0] == {
            "columnName": "id",
            "columnType": "VARCHAR",
            "nullable": True,
            "primaryKey": True,
        }
        assert [c["columnName"] for c in columns][-1] == "updatedAt"


class TestLoggingSetup:
    """Tests for logging configuration done by the app factory."""

    @pytest.fixture
    def root_level(self):
        root = logging.getLogger()
        before = root.level
        yield root
        root.setLevel(before)

    def test_factory_applies_log_level(self, stores, root_level):
        def factory(dev: bool):
            storage = stores[dev]
            return SyncFlow(storage), QueryExecutor(storage), storage

        create_app(settings=AppSettings(log_level="WARNING", log_json=False), components_factory=factory)
        assert root_level.level == logging.WARNING

        create_app(settings=AppSettings(log_level="DEBUG", log_json=False), components_factory=factory)
        assert root_level.level == logging.DEBUG
