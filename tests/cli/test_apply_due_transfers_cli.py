"""
Tests for scripts/apply_due_transfers.py -- the sweep command line.

Each test points the script at a fresh SQLite file under tmp_path.
"""

import time
from datetime import date, datetime
from types import SimpleNamespace

import pytest

from hrms_config import CONFIG_PATH_ENV, DATABASE_URL_ENV
from hrms_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from hrms_kernel.models.approval import ApproverLayerModel
from hrms_kernel.models.organization import EmployeeModel, RoleModel
from hrms_kernel.models.requests import EmployeeTransferModel

from scripts.apply_due_transfers import main


@pytest.fixture(autouse=True)
def _isolated(monkeypatch):
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
    yield
    reset_engine()


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'hrms.db'}"


@pytest.fixture
def seeded_change(db_url):
    """One due change for an employee, no approval layers configured."""
    init_engine_from_url(db_url)
    create_tables()
    session = get_session()
    try:
        employee = EmployeeModel(employee_code="EMP70", full_name="Employee EMP70")
        session.add(employee)
        session.flush()
        session.add(EmployeeTransferModel(
            employee_id=employee.id,
            change_type="transfer",
            effective_date=date(2024, 3, 1),
            created_at=datetime(2024, 2, 20, 9, 0, 0),
        ))
        session.commit()
    finally:
        session.close()
    reset_engine()


def test_dry_run_on_empty_database(db_url, capsys):
    assert main(["--db-url", db_url, "--dry-run"]) == 0
    assert "[DRY RUN]" in capsys.readouterr().out


def test_applies_due_change(db_url, seeded_change, capsys):
    assert main(["--db-url", db_url, "--as-of", "2024-03-10"]) == 0

    out = capsys.readouterr().out
    assert "[APPLIED] as of 2024-03-10" in out
    assert "applied=1" in out

    assert main(["--db-url", db_url, "--as-of", "2024-03-10"]) == 0
    assert "due=0" in capsys.readouterr().out


def test_dry_run_lists_without_applying(db_url, seeded_change, capsys):
    assert main(["--db-url", db_url, "--as-of", "2024-03-10", "--dry-run"]) == 0
    assert "due=1 applied=0" in capsys.readouterr().out

    assert main(["--db-url", db_url, "--as-of", "2024-03-10", "--dry-run"]) == 0
    assert "due=1" in capsys.readouterr().out


def test_non_positive_batch_size(db_url, capsys):
    assert main(["--db-url", db_url, "--batch-size", "0"]) == 2
    assert "--batch-size must be positive" in capsys.readouterr().err


def test_missing_config_file(tmp_path, db_url, capsys):
    assert main(["--db-url", db_url, "--config", str(tmp_path / "absent.yaml")]) == 1
    assert "Failed to load config" in capsys.readouterr().err


def test_sync_config_needs_roles(db_url, capsys):
    assert main(["--db-url", db_url, "--sync-config", "--dry-run"]) == 1
    assert "Config sync failed" in capsys.readouterr().err


def test_sync_config_writes_layers(db_url, capsys):
    init_engine_from_url(db_url)
    create_tables()
    session = get_session()
    try:
        session.add_all([RoleModel(name=name) for name in ("HR", "manager", "Finance")])
        session.commit()
    finally:
        session.close()
    reset_engine()

    assert main(["--db-url", db_url, "--sync-config", "--dry-run"]) == 0
    assert "layers_created=6" in capsys.readouterr().out

    init_engine_from_url(db_url)
    session = get_session()
    try:
        assert session.query(ApproverLayerModel).count() == 6
    finally:
        session.close()


def test_loop_honors_dry_run_and_as_of(db_url, seeded_change, monkeypatch, captured_logs, capsys):
    """--loop sweeps with the same dry-run and date options as a single run."""
    import scripts.apply_due_transfers as cli

    def _sleep_until_first_sweep(seconds):
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline:
            if any(r["message"] == "sweep_completed" for r in captured_logs()):
                break
            time.sleep(0.02)
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "time", SimpleNamespace(sleep=_sleep_until_first_sweep))

    assert main([
        "--db-url", db_url, "--loop", "--dry-run", "--as-of", "2024-03-10",
    ]) == 0
    assert "(dry run)" in capsys.readouterr().out

    completed = [r for r in captured_logs() if r["message"] == "sweep_completed"]
    assert completed
    assert completed[0]["dry_run"] is True
    assert completed[0]["as_of"] == "2024-03-10"
    assert completed[0]["due_count"] == 1
    assert completed[0]["applied"] == 0

    init_engine_from_url(db_url)
    session = get_session()
    try:
        change = session.query(EmployeeTransferModel).one()
        assert change.applied_at is None
    finally:
        session.close()
