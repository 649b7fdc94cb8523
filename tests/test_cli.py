"""CLI tests for end-to-end workflows."""

from pathlib import Path

import pytest

from ledgersync.cli.main import cli


@pytest.fixture
def invoke(cli_runner, temp_db, fake_hledger, ledger_file):
    """Invoke the CLI against the temporary database, ledger file and fake hledger."""

    def _invoke(*args):
        return cli_runner.invoke(
            cli,
            [
                "--db-path",
                temp_db.database_path,
                "--ledger-file",
                ledger_file,
                "--hledger",
                str(fake_hledger),
                "--user",
                "alice",
                *args,
            ],
        )

    return _invoke


def _extract_id(output):
    for line in output.splitlines():
        if "ID:" in line:
            return line.split("ID:")[1].strip().rstrip(")")
    return None


def test_help_does_not_touch_database(cli_runner):
    result = cli_runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "import" in result.output
    assert "balance" in result.output


def test_balance(invoke, ledger_file):
    Path(ledger_file).parent.mkdir(parents=True)
    Path(ledger_file).write_text("")

    result = invoke("balance")

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0].startswith("Assets")
    assert "$6,045.80" in lines[0]
    assert any(line.startswith("    Checking") and "$1,045.80" in line for line in lines)
    assert lines[-1].startswith("Total")
    assert "$6,091.03" in lines[-1]


def test_balance_missing_file(invoke):
    result = invoke("balance")

    assert result.exit_code == 1
    assert "not found" in result.output


def test_balance_missing_binary(cli_runner, temp_db, tmp_path):
    ledger = tmp_path / "main.hledger"
    ledger.write_text("")

    result = cli_runner.invoke(
        cli,
        ["--db-path", temp_db.database_path, "--hledger", str(tmp_path / "nope"), "balance", "--file", str(ledger)],
    )

    assert result.exit_code == 1
    assert "hledger binary not found" in result.output


def test_validate(invoke, ledger_file):
    Path(ledger_file).parent.mkdir(parents=True)
    Path(ledger_file).write_text("BROKEN\n")

    result = invoke("validate")

    assert result.exit_code == 1
    assert "unbalanced transaction" in result.output


def test_preview(invoke, sample_csv_file):
    result = invoke("preview", str(sample_csv_file))

    assert result.exit_code == 0, result.output
    assert "Delimiter: Comma" in result.output
    assert "Rows: 3" in result.output
    assert "-> amount (100%)" in result.output


def test_rule_workflow(invoke):
    result = invoke("rule", "create", "whole foods", "Expenses:Groceries", "--match", "contains")
    assert result.exit_code == 0, result.output
    assert "Created rule" in result.output

    result = invoke("rule", "create", "(bad", "Expenses:Groceries", "--match", "regex")
    assert result.exit_code == 1
    assert "Invalid regex pattern" in result.output

    result = invoke("rule", "list")
    assert "whole foods" in result.output
    rule_id = _extract_id(result.output)

    result = invoke("rule", "deactivate", rule_id)
    assert result.exit_code == 0
    assert invoke("rule", "list").output.strip() == "No import rules found."
    assert "(inactive)" in invoke("rule", "list", "--all").output


def test_import_workflow(invoke, sample_csv_file, ledger_file, temp_db):
    """Create a rule, import, re-import, then inspect the audit trail."""
    invoke("rule", "create", "whole foods", "Expenses:Groceries")

    result = invoke("import", str(sample_csv_file), "--account", "Assets:Checking", "--dry-run")
    assert result.exit_code == 0, result.output
    assert "Dry run" in result.output
    assert "Expenses:Groceries" in result.output
    assert "(uncategorized)" in result.output
    assert not Path(ledger_file).exists()

    result = invoke(
        "import",
        str(sample_csv_file),
        "--account",
        "Assets:Checking",
        "--default-category",
        "Expenses:Misc",
    )
    assert result.exit_code == 0, result.output
    assert "Imported: 3 transactions" in result.output
    assert "Whole Foods Market" in Path(ledger_file).read_text()
    assert len(temp_db.list_transactions()) == 3

    result = invoke(
        "import",
        str(sample_csv_file),
        "--account",
        "Assets:Checking",
        "--default-category",
        "Expenses:Misc",
    )
    assert result.exit_code == 0, result.output
    assert "Imported: 0 transactions" in result.output
    assert "Skipped: 3 duplicates" in result.output
    assert "already imported" in result.output

    result = invoke("audit", "list")
    assert result.exit_code == 0
    assert result.output.count("import") >= 2
    assert "alice" in result.output

    result = invoke("audit", "verify")
    assert "matches the audit trail" in result.output

    with open(ledger_file, "a", encoding="utf-8") as f:
        f.write("; hand edit\n")
    result = invoke("audit", "verify")
    assert "modified outside ledgersync" in result.output


def test_import_failure_exits_nonzero(invoke, tmp_path, ledger_file):
    csv_path = tmp_path / "broken.csv"
    csv_path.write_text("Date,Description,Amount\n2024-01-15,BROKEN shop,-5.00\n", encoding="utf-8")

    result = invoke("import", str(csv_path), "--account", "Assets:Checking", "--default-category", "Expenses:Misc")

    assert result.exit_code == 1
    assert "Transaction validation failed" in result.output
    assert not Path(ledger_file).exists()


def test_import_with_explicit_mapping(invoke, tmp_path, ledger_file):
    csv_path = tmp_path / "odd.csv"
    csv_path.write_text("When,Who,How Much\n2024-01-15,Corner Deli,-5.00\n", encoding="utf-8")

    result = invoke(
        "import",
        str(csv_path),
        "--account",
        "Assets:Checking",
        "--map",
        "When=date",
        "--map",
        "Who=description",
        "--map",
        "How Much=amount",
        "--default-category",
        "Expenses:Dining",
    )

    assert result.exit_code == 0, result.output
    assert "Corner Deli" in Path(ledger_file).read_text()


def test_import_bad_map_option(invoke, sample_csv_file):
    result = invoke("import", str(sample_csv_file), "--account", "Assets:Checking", "--map", "Date")

    assert result.exit_code != 0
    assert "Expected 'Header=field'" in result.output


def test_mapping_workflow(invoke, tmp_path):
    csv_path = tmp_path / "odd.csv"
    csv_path.write_text("When,Who,How Much\n2024-01-15,Corner Deli,-5.00\n", encoding="utf-8")

    result = invoke(
        "mapping", "save", "MyBank", str(csv_path),
        "--map", "When=date", "--map", "Who=description", "--map", "How Much=amount",
    )
    assert result.exit_code == 0, result.output
    mapping_id = _extract_id(result.output)

    result = invoke("mapping", "list")
    assert "MyBank" in result.output
    assert "Who -> description" in result.output

    # The saved mapping is picked up without --map
    result = invoke("import", str(csv_path), "--account", "Assets:Checking", "--dry-run")
    assert result.exit_code == 0, result.output
    assert "Corner Deli" in result.output

    result = invoke("mapping", "delete", mapping_id)
    assert result.exit_code == 0
    assert invoke("mapping", "list").output.strip() == "No saved column mappings."

    result = invoke("mapping", "delete", mapping_id)
    assert result.exit_code == 1
    assert "not found" in result.output


def test_invalid_timeout_env(cli_runner, temp_db, monkeypatch):
    monkeypatch.setenv("LEDGERSYNC_TIMEOUT", "soon")

    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "rule", "list"])

    assert result.exit_code == 2
    assert "LEDGERSYNC_TIMEOUT" in result.output
