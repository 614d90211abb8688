"""Tests for main.py -- the operator CLI.

Each test points --database-url at a fresh SQLite file under tmp_path, so the
CLI opens its own engine exactly as it would in production.
"""

import pytest

from accounts.models import UserRecord
from accounts.store import AccountStore
from main import build_parser, main


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _seed(db_url: str, n: int) -> list[int]:
    store = AccountStore(db_url)
    try:
        return [
            store.insert(
                UserRecord(
                    full_name=f"User {i}",
                    email=f"user{i}@x.com",
                    password_hash="$2b$04$placeholder",
                    phone_number="123",
                    country="X",
                    interests=["tech"],
                )
            )
            for i in range(n)
        ]
    finally:
        store.close()


def test_init_db(db_url, capsys):
    assert main(["--database-url", db_url, "init-db"]) == 0
    assert "doregister_users" in capsys.readouterr().out
    store = AccountStore(db_url)
    assert store.table_exists()
    store.close()


def test_count(db_url, capsys):
    _seed(db_url, 3)
    assert main(["--database-url", db_url, "count"]) == 0
    assert capsys.readouterr().out.strip() == "3"


def test_list_pages(db_url, capsys):
    _seed(db_url, 3)
    assert main(["--database-url", db_url, "list", "--per-page", "2", "--page", "2"]) == 0
    out = capsys.readouterr().out
    assert "user0@x.com" in out
    assert "user2@x.com" not in out
    assert "Page 2 of 2 (3 total)" in out


def test_list_empty(db_url, capsys):
    assert main(["--database-url", db_url, "list"]) == 0
    assert "No registrations found." in capsys.readouterr().out


def test_delete_skips_invalid_ids(db_url, capsys):
    ids = _seed(db_url, 2)
    assert main(["--database-url", db_url, "delete", str(ids[0]), "abc", "999"]) == 0
    assert "1 record(s) deleted." in capsys.readouterr().out
    store = AccountStore(db_url)
    assert store.count() == 1
    store.close()


def test_command_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
