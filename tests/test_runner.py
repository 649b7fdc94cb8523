"""Tests for locating hledger and running it as a subprocess."""

import asyncio
import hashlib
import json

import pytest

from ledgersync.domain.context import OperationContext
from ledgersync.domain.errors import (
    BinaryUnavailable,
    OperationCancelled,
    ParseFailure,
    ProcessFailure,
    describe_ledger_error,
)
from ledgersync.domain.money import Money
from ledgersync.ledger.binary import BinaryLocator
from ledgersync.ledger.runner import (
    LedgerProcessRunner,
    parse_balance_output,
    parse_validation_errors,
)

from conftest import balance_row


@pytest.fixture
def journal(tmp_path):
    path = tmp_path / "main.hledger"
    path.write_text("2024-01-15 Coffee\n  Expenses:Food  $4.50\n  Assets:Cash\n")
    return path


class TestBinaryLocator:
    """Tests for BinaryLocator."""

    def test_explicit_path(self, fake_hledger):
        assert BinaryLocator(str(fake_hledger)).locate() == str(fake_hledger)

    def test_missing_binary(self, tmp_path):
        with pytest.raises(BinaryUnavailable, match="not found"):
            BinaryLocator(str(tmp_path / "nope")).locate()

    def test_not_executable(self, tmp_path):
        path = tmp_path / "hledger"
        path.write_text("#!/bin/sh\n")
        path.chmod(0o644)
        with pytest.raises(BinaryUnavailable, match="not executable"):
            BinaryLocator(str(path)).locate()

    def test_path_lookup(self, fake_hledger, monkeypatch):
        monkeypatch.setenv("PATH", str(fake_hledger.parent))
        assert BinaryLocator().locate() == str(fake_hledger)

    def test_path_lookup_fails(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path))
        with pytest.raises(BinaryUnavailable, match="not found on PATH"):
            BinaryLocator().locate()

    def test_checksum_match(self, fake_hledger):
        digest = hashlib.sha256(fake_hledger.read_bytes()).hexdigest()
        assert BinaryLocator(str(fake_hledger), digest.upper()).locate() == str(fake_hledger)

    def test_checksum_mismatch(self, fake_hledger):
        with pytest.raises(BinaryUnavailable, match="validation failed"):
            BinaryLocator(str(fake_hledger), "0" * 64).locate()

    def test_caches_located_path(self, fake_hledger):
        locator = BinaryLocator(str(fake_hledger))
        locator.locate()
        locator.binary_path = "/does/not/exist"
        assert locator.locate() == str(fake_hledger)

        locator.reset()
        with pytest.raises(BinaryUnavailable):
            locator.locate()


class TestParseBalanceOutput:
    """Tests for parsing hledger's JSON balance report."""

    def test_parses_rows(self):
        output = json.dumps([[balance_row("Assets:Cash", 104580), balance_row("Expenses:Food", -4523)], []])
        result = parse_balance_output(output)

        assert [b.account for b in result.balances] == ["Assets:Cash", "Expenses:Food"]
        assert result.balances[0].amount == Money(104580)
        assert result.balances[0].commodity == "$"
        assert result.total_balance == Money(100057)

    def test_mantissa_scale(self):
        """Amounts with more than two places are rounded to the cent."""
        output = json.dumps([[balance_row("Assets:Cash", 12345, places=3)], []])
        assert parse_balance_output(output).balances[0].amount == Money(1235)

    def test_row_without_amounts_is_zero(self):
        output = json.dumps([[["Equity", "Equity", 0, []]], []])
        entry = parse_balance_output(output).balances[0]
        assert entry.amount == Money(0)
        assert entry.commodity == ""

    def test_floating_point_fallback(self):
        row = ["Assets", "Assets", 0, [{"acommodity": "$", "aquantity": {"floatingPoint": 10.1}}]]
        assert parse_balance_output(json.dumps([[row], []])).balances[0].amount == Money(1010)

    @pytest.mark.parametrize(
        "output",
        [
            "not json",
            "{}",
            "[]",
            json.dumps([["Assets"]]),
            json.dumps([[["Assets", "Assets", 0, [{"acommodity": "$"}]]]]),
        ],
    )
    def test_malformed_output(self, output):
        with pytest.raises(ParseFailure) as excinfo:
            parse_balance_output(output)
        assert excinfo.value.raw_output == output

    def test_empty_report(self):
        result = parse_balance_output("[[], []]")
        assert result.balances == ()
        assert result.total_balance == Money(0)


def test_parse_validation_errors():
    assert parse_validation_errors("\nerror one\n  \nerror two\n") == ["error one", "error two"]
    assert parse_validation_errors("") == ["Unknown validation error"]


@pytest.mark.asyncio
async def test_get_balances(runner, journal):
    result = await runner.get_balances(str(journal))
    assert len(result.balances) == 3
    assert result.balances[0].account == "Assets:Bank:Checking"


@pytest.mark.asyncio
async def test_get_balances_missing_file(runner, tmp_path):
    with pytest.raises(FileNotFoundError):
        await runner.get_balances(str(tmp_path / "missing.hledger"))


@pytest.mark.asyncio
async def test_get_balances_passes_filters(make_hledger, journal):
    """Account filters are appended to the command line."""
    script = make_hledger(
        """\
        echo "$@" >&2
        exit 3
        """
    )
    runner = LedgerProcessRunner(BinaryLocator(str(script)))

    with pytest.raises(ProcessFailure) as excinfo:
        await runner.get_balances(str(journal), ["Assets", "Expenses:Food"])

    assert excinfo.value.exit_code == 3
    assert excinfo.value.stderr.strip() == f"bal -f {journal} -O json Assets Expenses:Food"
    assert "Exit code: 3" in describe_ledger_error(excinfo.value)


@pytest.mark.asyncio
async def test_validate_valid_file(runner, journal):
    result = await runner.validate(str(journal))
    assert result.is_valid
    assert result.errors == ()


@pytest.mark.asyncio
async def test_validate_invalid_file(runner, tmp_path):
    path = tmp_path / "broken.hledger"
    path.write_text("BROKEN\n")

    result = await runner.validate(str(path))

    assert not result.is_valid
    assert result.errors == (f"hledger: Error: {path}:3: unbalanced transaction",)


@pytest.mark.asyncio
async def test_validate_missing_file(runner, tmp_path):
    result = await runner.validate(str(tmp_path / "missing.hledger"))
    assert not result.is_valid
    assert "File not found" in result.errors[0]


@pytest.mark.asyncio
async def test_validate_propagates_other_failures(make_hledger, journal):
    """Only exit code 1 is a validation result; other failures raise."""
    script = make_hledger("exit 2\n")
    runner = LedgerProcessRunner(BinaryLocator(str(script)))

    with pytest.raises(ProcessFailure):
        await runner.validate(str(journal))


@pytest.mark.asyncio
async def test_timeout(make_hledger, journal):
    script = make_hledger("exec sleep 5\n")
    runner = LedgerProcessRunner(BinaryLocator(str(script)), timeout=0.2)

    with pytest.raises(ProcessFailure) as excinfo:
        await runner.execute(["bal", "-f", str(journal)])

    assert excinfo.value.timed_out
    assert excinfo.value.exit_code == -1


@pytest.mark.asyncio
async def test_context_deadline_caps_timeout(make_hledger, journal):
    script = make_hledger("exec sleep 5\n")
    runner = LedgerProcessRunner(BinaryLocator(str(script)), timeout=30)

    with pytest.raises(ProcessFailure) as excinfo:
        await runner.execute(["bal", "-f", str(journal)], context=OperationContext.with_timeout(0.2))

    assert excinfo.value.timed_out


@pytest.mark.asyncio
async def test_cancellation(make_hledger, journal):
    script = make_hledger("exec sleep 5\n")
    runner = LedgerProcessRunner(BinaryLocator(str(script)), timeout=30)
    context = OperationContext()

    async def cancel_soon():
        await asyncio.sleep(0.1)
        context.cancel()

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(OperationCancelled):
        await runner.execute(["bal", "-f", str(journal)], context=context)
    await canceller


@pytest.mark.asyncio
async def test_cancelled_before_start(runner, journal):
    context = OperationContext()
    context.cancel()

    with pytest.raises(OperationCancelled):
        await runner.get_balances(str(journal), context=context)


@pytest.mark.asyncio
async def test_concurrent_reads(runner, journal):
    """Independent read-only commands can run concurrently."""
    results = await asyncio.gather(*(runner.get_balances(str(journal)) for _ in range(5)))
    assert all(len(r.balances) == 3 for r in results)
