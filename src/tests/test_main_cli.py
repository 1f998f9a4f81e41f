"""Tests for the command-line entry point."""

import pytest

import src.main as cli
from src.services.compound_batch_service import create_compound_batch


@pytest.fixture
def run_cli(test_db, monkeypatch, capsys):
    """Run the CLI against the test database; returns (exit_code, stdout)."""
    monkeypatch.setattr(cli, "initialize_app_database", lambda: None)

    def _run(*argv):
        code = cli.main(list(argv))
        return code, capsys.readouterr().out

    return _run


class TestCli:
    def test_no_command_prints_help(self, run_cli):
        code, out = run_cli()
        assert code == 1
        assert "usage" in out.lower()

    def test_add_compound(self, run_cli):
        code, out = run_cli("add-compound", "nk5", "Nk-5", "90")
        assert code == 0
        assert "Added nk5 (Nk-5)" in out

    def test_add_compound_error(self, run_cli):
        code, out = run_cli("add-compound", "nk5", "Nk-5", "-1")
        assert code == 1
        assert out.startswith("ERROR:")

    def test_batches(self, run_cli, catalog):
        create_compound_batch("nk5", "2025-03-03", 1)
        code, out = run_cli("batches", "--code", "nk5")
        assert code == 0
        assert "2025-03-03" in out
        assert "nk5: 90" in out

    def test_batches_empty(self, run_cli):
        assert run_cli("batches") == (0, "No batches\n")

    def test_check_date(self, run_cli):
        code, out = run_cli("check-date", "2025-03-09")
        assert code == 0
        assert "not a working day" in out
        assert "used by: nothing" in out

    def test_check_date_invalid(self, run_cli):
        code, out = run_cli("check-date", "09-03-2025")
        assert code == 1
        assert "ERROR" in out

    def test_find_date(self, run_cli):
        code, out = run_cli("find-date", "2025-04-21")
        assert code == 0
        assert out.strip() < "2025-04-21"

    def test_resolve_dates(self, run_cli):
        code, out = run_cli("resolve-dates", "--cover", "2025-03-10", "--skim", "2025-03-10")
        assert code == 0
        assert "cover: 2025-03-10" in out
        assert "skim:  2025-03-08" in out

    def test_schedule(self, run_cli):
        code, out = run_cli("schedule", "2025-04-30")
        assert code == 0
        assert "dispatch_date              2025-04-30" in out
        assert "skim_compound_date" in out

    def test_schedule_from_calendaring(self, run_cli):
        code, out = run_cli("schedule", "2025-04-07", "--step", "calendaring_date")
        assert code == 0
        assert "calendaring_date           2025-04-07" in out

    def test_audit(self, run_cli):
        code, out = run_cli("audit")
        assert code == 0
        assert "Ledger is consistent" in out
