"""
tests/test_seed_cli.py -- Reference-data seeding and the main.py CLI.

Covers:
  - seed_reference_data() is idempotent and reports per-collection counts
  - load_reference_file() accepts strings or {"name": ...} objects and
    rejects unknown collections
  - `main.py seed` and `main.py create-admin` against an in-memory store
"""

from __future__ import annotations

import json

import pytest

import main as cli
from auth.seed import DEFAULT_REFERENCE_DATA, load_reference_file, seed_reference_data
from auth.tokens import verify_password
from conftest import STRONG_PASSWORD, make_test_store


@pytest.fixture
def cli_store(monkeypatch):
    """Point the CLI at an unseeded in-memory store that survives close()."""
    store = make_test_store(seed=False)
    real_close = store.close
    monkeypatch.setattr(store, "close", lambda: None)
    monkeypatch.setattr("auth.store.UserStore", lambda *args, **kwargs: store)
    yield store
    real_close()


class TestSeedReferenceData:
    def test_defaults_then_idempotent(self):
        store = make_test_store(seed=False)
        try:
            first = seed_reference_data(store)
            assert first == {kind: len(names) for kind, names in DEFAULT_REFERENCE_DATA.items()}
            second = seed_reference_data(store)
            assert set(second.values()) == {0}
        finally:
            store.close()

    def test_load_file_with_mixed_entries(self, tmp_path):
        path = tmp_path / "ref.json"
        path.write_text(json.dumps({"cities": ["Jericho", {"name": "Salfit"}]}), encoding="utf-8")
        assert load_reference_file(path) == {"cities": ["Jericho", "Salfit"]}

    def test_load_file_rejects_unknown_collection(self, tmp_path):
        path = tmp_path / "ref.json"
        path.write_text(json.dumps({"planets": ["Mars"]}), encoding="utf-8")
        with pytest.raises(ValueError, match="Unknown reference collections"):
            load_reference_file(path)

    def test_load_file_rejects_bad_entry(self, tmp_path):
        path = tmp_path / "ref.json"
        path.write_text(json.dumps({"cities": [42]}), encoding="utf-8")
        with pytest.raises(ValueError):
            load_reference_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValueError, match="not a readable file"):
            load_reference_file(tmp_path / "absent.json")


class TestCli:
    def test_seed_defaults(self, cli_store, capsys):
        assert cli.main(["seed"]) == 0
        assert cli_store.reference_exists("cities", "Ramallah")
        assert f"cities: {len(DEFAULT_REFERENCE_DATA['cities'])} added" in capsys.readouterr().out

    def test_seed_from_file(self, cli_store, tmp_path):
        path = tmp_path / "ref.json"
        path.write_text(json.dumps({"majors": ["Law"]}), encoding="utf-8")
        assert cli.main(["seed", "--file", str(path)]) == 0
        assert cli_store.list_references("majors") == ["Law"]

    def test_seed_bad_file(self, cli_store, tmp_path, capsys):
        assert cli.main(["seed", "--file", str(tmp_path / "absent.json")]) == 1
        assert "[!]" in capsys.readouterr().out

    def test_create_admin(self, cli_store):
        code = cli.main(["create-admin", "--email", "Root@Example.com", "--name", "Site Admin", "--password", STRONG_PASSWORD])
        assert code == 0
        admin = cli_store.get_by_email("root@example.com")
        assert admin.role == "admin"
        assert admin.is_email_verified is True
        assert verify_password(STRONG_PASSWORD, admin.password_hash)

    def test_create_admin_weak_password(self, cli_store, capsys):
        code = cli.main(["create-admin", "--email", "root@example.com", "--name", "Site Admin", "--password", "weak"])
        assert code == 1
        assert "at least 8 characters" in capsys.readouterr().out
        assert cli_store.get_by_email("root@example.com") is None

    def test_create_admin_duplicate(self, cli_store, capsys):
        args = ["create-admin", "--email", "root@example.com", "--name", "Site Admin", "--password", STRONG_PASSWORD]
        assert cli.main(args) == 0
        assert cli.main(args) == 1
        assert "already exists" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()
