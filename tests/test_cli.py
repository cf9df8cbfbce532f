from typer.testing import CliRunner

from postcopy.cli import app

runner = CliRunner()


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "postcopy 0.1.0" in result.stdout


def test_help() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "migration simulator" in result.stdout


def test_run_with_arguments() -> None:
    result = runner.invoke(app, ["run", "1", "0.5", "100000", "--yes", "--seed", "3"])
    assert result.exit_code == 0
    assert "256 pages" in result.stdout
    assert "PHASE 2: DOWNTIME" in result.stdout
    assert "POST-COPY MIGRATION COMPLETED" in result.stdout
    assert "Non-pageable (downtime):  5 pages" in result.stdout


def test_run_quiet_skips_progress() -> None:
    result = runner.invoke(app, ["run", "1", "0.2", "100000", "--yes", "--quiet"])
    assert result.exit_code == 0
    assert "PHASE 1" not in result.stdout
    assert "Migration timing" in result.stdout


def test_out_of_range_ratio_uses_default() -> None:
    result = runner.invoke(app, ["run", "1", "1.5", "100000", "--yes", "--quiet"])
    assert result.exit_code == 0
    assert "Ratio must be between 0.0 and 1.0, got 1.5" in result.stdout
    assert "Using default: 0.2" in result.stdout
    assert "Free page ratio:" in result.stdout
    assert "20.0%" in result.stdout


def test_interactive_prompts() -> None:
    # VM size, free ratio, link speed, then Enter to start
    result = runner.invoke(app, ["run", "--quiet"], input="1\n0.3\n100000\n\n")
    assert result.exit_code == 0
    assert "Enter VM size in MB" in result.stdout
    assert "30.0%" in result.stdout
    assert "POST-COPY MIGRATION COMPLETED" in result.stdout


def test_invalid_prompted_value_falls_back() -> None:
    result = runner.invoke(app, ["run", "1", "0.2", "--quiet"], input="-5\n\n")
    assert result.exit_code == 0
    assert "Link speed must be positive. Using default: 1000.0" in result.stdout


def test_migration_error_exits_with_code_one(monkeypatch) -> None:
    from postcopy.migration import MigrationController, MigrationError

    def failing_run(self):
        raise MigrationError("PagingService failed: link down")

    monkeypatch.setattr(MigrationController, "run", failing_run)
    result = runner.invoke(app, ["run", "1", "0.2", "100000", "--yes", "--quiet"])
    assert result.exit_code == 1
    assert "Error: PagingService failed: link down" in result.stdout
    assert "POST-COPY MIGRATION COMPLETED" not in result.stdout
