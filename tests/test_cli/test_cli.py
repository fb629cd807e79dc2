"""
End-to-end CLI tests with the heuristic oracle on a temp database.

What we test
------------
1. init-db, import-orders, generate, list-recommendations, update-status.
2. A second generate without --force-refresh adds nothing.
3. Errors map to exit code 1 (unknown id, re-activation, unconfigured oracle,
   customer discovery failure).
"""

from __future__ import annotations

import json
import sqlite3
from datetime import timedelta

import pytest
from typer.testing import CliRunner

from remarketing import cli
from remarketing.db.connection import Database
from remarketing.db.store import SQLiteRecommendationStore
from remarketing.utils.time_utils import utcnow

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "_configure_logging", lambda config: None)
    for name in ("REMARKETING_DB_PATH", "REMARKETING_ORACLE_BACKEND",
                 "REMARKETING_ORACLE_API_KEY", "OPENAI_API_KEY", "REMARKETING_SCHEDULE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "app.toml"
    path.write_text(
        f'[database]\ndb_path = "{(tmp_path / "cli.db").as_posix()}"\n'
        '[oracle]\nbackend = "heuristic"\n'
        '[scheduler]\ntimezone = "UTC"\n',
        encoding="utf-8",
    )
    return path


@pytest.fixture
def orders_file(tmp_path):
    now = utcnow()
    doc = {
        "customers": [{"customer_id": "c1", "email": "ada@example.com", "first_name": "Ada"}],
        "products": [{"product_id": "p1", "name": "Oak Table", "category_id": "tables"}],
        "orders": [
            {"order_id": f"o{i}", "customer_id": "c1", "total": 300.0,
             "created_at": (now - timedelta(days=days)).isoformat(),
             "items": [{"product_id": "p1", "quantity": 1, "price": 300.0}]}
            for i, days in enumerate((60, 30, 5))
        ],
    }
    path = tmp_path / "orders.json"
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


def _invoke(*args):
    return runner.invoke(cli.app, [str(a) for a in args])


def test_full_flow(config_file, orders_file, tmp_path):
    assert _invoke("init-db", "--config", config_file).exit_code == 0

    imported = _invoke("import-orders", "--file", orders_file, "--config", config_file)
    assert imported.exit_code == 0, imported.output
    assert "3 new" in imported.output

    first = _invoke("generate", "--config", config_file)
    assert first.exit_code == 0, first.output
    assert "[OK] Generation complete." in first.output

    store = SQLiteRecommendationStore(Database(str(tmp_path / "cli.db")))
    created = store.list_recommendations(limit=100)
    assert created
    assert all(r.customer_email == "ada@example.com" for r in created)

    second = _invoke("generate", "--config", config_file)
    assert "Generated:  0" in second.output
    assert len(store.list_recommendations(limit=100)) == len(created)

    listed = _invoke("list-recommendations", "--status", "active", "--config", config_file)
    assert f"#{created[0].rec_id}" in listed.output

    done = _invoke("update-status", created[0].rec_id, "processed",
                   "--notes", "Called customer", "--config", config_file)
    assert done.exit_code == 0, done.output
    assert store.get(created[0].rec_id).ai_analysis.personalization_notes == "Called customer"


def test_update_status_errors(config_file):
    _invoke("init-db", "--config", config_file)
    missing = _invoke("update-status", 999, "dismissed", "--config", config_file)
    assert missing.exit_code == 1
    bogus = _invoke("update-status", 1, "archived", "--config", config_file)
    assert bogus.exit_code == 1


def test_generate_without_api_key_fails(tmp_path):
    path = tmp_path / "llm.toml"
    path.write_text(
        f'[database]\ndb_path = "{(tmp_path / "llm.db").as_posix()}"\n'
        '[oracle]\nbackend = "llm"\n',
        encoding="utf-8",
    )
    result = _invoke("generate", "--config", path)
    assert result.exit_code == 1


def test_validate_config(config_file):
    result = _invoke("validate-config", "--config", config_file)
    assert result.exit_code == 0
    assert "heuristic" in result.output


def test_generate_discovery_failure_exits_cleanly(config_file, monkeypatch):
    from remarketing.db.store import SQLiteOrderSource

    def broken(self):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(
        SQLiteOrderSource, "list_distinct_customers_with_completed_orders", broken,
    )
    _invoke("init-db", "--config", config_file)

    result = _invoke("generate", "--config", config_file)
    assert result.exit_code == 1
    assert "[ERROR] Could not list customers" in result.output
