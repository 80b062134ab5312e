"""
Schema bootstrap script and the opt-in startup hook.
"""
import pytest

from backend.storage import bootstrap
from backend.storage.errors import StorageUnavailable


def test_schema_declares_uniqueness_of_daily_records():
    script = bootstrap.schema_script()
    assert "create table if not exists public.daily_records" in script
    assert "unique (task_id, owner_id, submitted_date)" in script


def test_bootstrap_script_creates_tables_before_policies():
    script = bootstrap.bootstrap_script()
    assert script.index("create table if not exists public.user_profiles") < script.index("create policy")
    assert "create or replace function public.harian_current_actor()" in script


def test_ensure_schema_is_noop_without_flag(monkeypatch):
    called = []
    monkeypatch.setattr(bootstrap, "apply_schema", lambda dsn: called.append(dsn))
    monkeypatch.delenv("HARIAN_AUTO_BOOTSTRAP_SCHEMA", raising=False)
    assert bootstrap.ensure_schema_from_env() is False
    assert called == []


def test_ensure_schema_prefers_migration_dsn(monkeypatch):
    called = []
    monkeypatch.setattr(bootstrap, "apply_schema", lambda dsn: called.append(dsn))
    monkeypatch.setenv("HARIAN_AUTO_BOOTSTRAP_SCHEMA", "true")
    monkeypatch.setenv("HARIAN_MIGRATION_DSN", "postgresql://migrator@db/harian")
    assert bootstrap.ensure_schema_from_env() is True
    assert called == ["postgresql://migrator@db/harian"]


def test_apply_schema_wraps_connection_failures(monkeypatch):
    if not bootstrap.HAVE_PSYCOPG:
        pytest.skip("psycopg not available")

    def _refuse(*args, **kwargs):
        raise bootstrap.psycopg.OperationalError("connection refused")

    monkeypatch.setattr(bootstrap.psycopg, "connect", _refuse)
    with pytest.raises(StorageUnavailable) as excinfo:
        bootstrap.apply_schema("postgresql://nobody@127.0.0.1:1/none")
    assert excinfo.value.code == "storage_unavailable"
    assert excinfo.value.cause_name == "OperationalError"
