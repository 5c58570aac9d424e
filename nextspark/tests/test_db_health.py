"""Tests for the database health script."""

import pytest

from nextspark.scripts import db_health


@pytest.mark.parametrize(
    "url,dialect,host,port,database",
    [
        ("postgresql://app:pw@db.internal:5432/app", "postgresql", "db.internal", 5432, "app"),
        ("postgres://app:pw@localhost/app", "postgresql", "localhost", None, "app"),
        ("postgresql+psycopg2://app@localhost:6543/app", "postgresql", "localhost", 6543, "app"),
        ("mysql://root:pw@127.0.0.1:3306/shop", "mysql", "127.0.0.1", 3306, "shop"),
        ("sqlite:///tmp/app.db", "sqlite", None, None, "tmp/app.db"),
    ],
)
def test_parse_database_url(url, dialect, host, port, database):
    info = db_health.parse_database_url(url)
    assert info.dialect == dialect
    assert info.host == host
    assert info.port == port
    assert info.database == database


def test_unsupported_scheme():
    with pytest.raises(db_health.UnsupportedDatabaseUrl, match="Unsupported database scheme: mongodb"):
        db_health.parse_database_url("mongodb://localhost/app")
    with pytest.raises(db_health.UnsupportedDatabaseUrl):
        db_health.parse_database_url("not-a-url")


def test_mask_database_url():
    assert db_health.mask_database_url("postgresql://app:secret@db:5432/app") == "postgresql://app:***@db:5432/app"
    assert db_health.mask_database_url("postgresql://app@db/app") == "postgresql://app@db/app"
    assert db_health.mask_database_url("sqlite:///app.db") == "sqlite:///app.db"


def test_load_database_url_prefers_env_local(tmp_path, monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    (tmp_path / ".env").write_text("DATABASE_URL=sqlite:///from-env.db\n")
    (tmp_path / ".env.local").write_text("DATABASE_URL=sqlite:///from-local.db\n")
    assert db_health.load_database_url(str(tmp_path)) == "sqlite:///from-local.db"


def test_load_database_url_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///env.db")
    assert db_health.load_database_url(str(tmp_path)) == "sqlite:///env.db"


def test_main_connects_to_sqlite(tmp_path, capsys):
    url = f"sqlite:///{tmp_path / 'health.db'}"
    assert db_health.main(["--url", url]) == 0
    assert "Connected" in capsys.readouterr().out


def test_main_without_url(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.chdir(tmp_path)
    assert db_health.main([]) == 1
    assert "DATABASE_URL is not set" in capsys.readouterr().out


def test_main_rejects_unsupported_scheme(capsys):
    assert db_health.main(["--url", "redis://localhost:6379/0"]) == 1
    assert "Unsupported database scheme" in capsys.readouterr().out
