"""Runs hledger as a subprocess and parses its output."""

import asyncio
import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional, Sequence

from ledgersync.domain.context import OperationContext
from ledgersync.domain.entities import BalanceEntry, BalanceResult, ValidationResult
from ledgersync.domain.errors import OperationCancelled, ParseFailure, ProcessFailure
from ledgersync.domain.money import Money
from ledgersync.ledger.binary import BinaryLocator

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class LedgerProcessRunner:
    """Executes hledger commands, captures output and maps failures to errors.

    Read-only commands do not touch engine state, so independent calls may
    run concurrently.
    """

    def __init__(self, locator: BinaryLocator, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        """Initialize process runner.

        Args:
            locator: Resolves the hledger executable
            timeout: Default per-command timeout in seconds
        """
        self.locator = locator
        self.timeout = timeout

    async def get_balances(
        self,
        file_path: str,
        account_filters: Optional[Sequence[str]] = None,
        context: Optional[OperationContext] = None,
    ) -> BalanceResult:
        """Run ``hledger bal -O json`` and return the flat balance list.

        Args:
            file_path: Ledger file to report on
            account_filters: Optional account queries; any match is included
            context: Correlation, cancellation and deadline for this call

        Returns:
            BalanceResult with one entry per reported account

        Raises:
            FileNotFoundError: If the ledger file does not exist
            BinaryUnavailable: If hledger cannot be located
            ProcessFailure: If hledger exits non-zero or times out
            ParseFailure: If hledger output is not the expected JSON
            OperationCancelled: If the context is cancelled
        """
        if not Path(file_path).is_file():
            raise FileNotFoundError(f"hledger file not found: {file_path}")

        args = ["bal", "-f", str(file_path), "-O", "json"]
        if account_filters:
            args.extend(account_filters)

        output = await self.execute(args, context=context)
        return parse_balance_output(output)

    async def validate(
        self, file_path: str, context: Optional[OperationContext] = None
    ) -> ValidationResult:
        """Validate a ledger file using ``hledger check``.

        Exit code 1 means the journal itself is invalid and is reported as a
        failed result; other failures propagate.
        """
        if not Path(file_path).is_file():
            return ValidationResult.failure(f"File not found: {file_path}")

        try:
            await self.execute(["check", "-f", str(file_path)], context=context)
        except ProcessFailure as e:
            if e.exit_code == 1 and not e.timed_out:
                return ValidationResult.failure(*parse_validation_errors(e.stderr))
            raise
        return ValidationResult.success()

    async def execute(
        self,
        args: Sequence[str],
        context: Optional[OperationContext] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Run hledger with ``args`` and return its stdout."""
        context = context or OperationContext()
        binary = self.locator.locate()
        limit = context.remaining(timeout if timeout is not None else self.timeout)
        command = " ".join(args)

        if context.cancelled:
            raise OperationCancelled(f"hledger command cancelled before start: {command}")

        logger.debug("Executing hledger command: %s %s", binary, command, extra=context.log_extra())

        try:
            process = await asyncio.create_subprocess_exec(
                binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=_working_directory(args),
            )
        except OSError as e:
            raise ProcessFailure(
                f"Failed to start hledger process: {e}", -1, "", str(e)
            ) from e

        stdout_bytes, stderr_bytes = await self._communicate(process, limit, context, command)
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")

        logger.debug(
            "hledger command completed: exit_code=%s output_length=%d error_length=%d",
            process.returncode,
            len(stdout),
            len(stderr),
            extra=context.log_extra(),
        )

        if process.returncode != 0:
            logger.error(
                "hledger command failed: %s %s\nExit Code: %s\nStderr: %s",
                binary,
                command,
                process.returncode,
                stderr,
                extra=context.log_extra(),
            )
            raise ProcessFailure(
                f"hledger command failed with exit code {process.returncode}",
                process.returncode,
                stdout,
                stderr,
            )

        return stdout

    async def _communicate(
        self,
        process: asyncio.subprocess.Process,
        limit: float,
        context: OperationContext,
        command: str,
    ) -> tuple[bytes, bytes]:
        communicate = asyncio.ensure_future(process.communicate())
        cancel_wait = asyncio.ensure_future(context.cancel_event.wait())

        try:
            done, _ = await asyncio.wait(
                {communicate, cancel_wait},
                timeout=limit,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            logger.warning("hledger command cancelled: %s", command, extra=context.log_extra())
            await _terminate(process, communicate)
            raise
        finally:
            cancel_wait.cancel()

        if communicate in done:
            return communicate.result()

        await _terminate(process, communicate)

        if cancel_wait in done:
            logger.warning("hledger command cancelled: %s", command, extra=context.log_extra())
            raise OperationCancelled(f"hledger command cancelled: {command}")

        logger.error(
            "hledger command timed out after %.1f seconds: %s",
            limit,
            command,
            extra=context.log_extra(),
        )
        raise ProcessFailure(
            f"hledger command timed out after {limit:g} seconds",
            -1,
            "",
            "Timeout",
            timed_out=True,
        )


async def _terminate(process: asyncio.subprocess.Process, communicate: asyncio.Future) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    communicate.cancel()
    await process.wait()


def _working_directory(args: Sequence[str]) -> Optional[str]:
    """Directory of the ``-f`` file argument, so relative includes resolve."""
    args = list(args)
    if "-f" in args:
        index = args.index("-f")
        if index + 1 < len(args):
            directory = Path(args[index + 1]).parent
            if str(directory) not in ("", "."):
                return str(directory)
    return None


def parse_validation_errors(stderr: str) -> list[str]:
    """Split ``hledger check`` stderr into non-blank diagnostic lines."""
    lines = [line.strip() for line in stderr.splitlines() if line.strip()]
    return lines or ["Unknown validation error"]


def parse_balance_output(output: str) -> BalanceResult:
    """Parse ``hledger bal -O json`` output.

    The payload is ``[accountRows, totals]`` where each account row is
    ``[fullName, displayName, indent, [amount, ...]]`` and an amount is
    ``{"acommodity": ..., "aquantity": {"decimalMantissa", "decimalPlaces",
    "floatingPoint"}}``.

    Raises:
        ParseFailure: If the output does not have that shape
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise ParseFailure("Failed to parse hledger balance output", output) from e

    if not isinstance(data, list) or not data or not isinstance(data[0], list):
        raise ParseFailure("Unexpected hledger balance output structure", output)

    balances = []
    for row in data[0]:
        if (
            not isinstance(row, list)
            or len(row) < 4
            or not isinstance(row[0], str)
            or not isinstance(row[3], list)
        ):
            raise ParseFailure(f"Malformed account row in hledger output: {row!r}", output)

        if row[3]:
            commodity, amount = _parse_amount(row[3][0], output)
        else:
            commodity, amount = "", Money(0)

        balances.append(BalanceEntry(account=row[0], amount=amount, commodity=commodity))

    total = sum((entry.amount for entry in balances), Money(0))
    return BalanceResult(balances=tuple(balances), total_balance=total)


def _parse_amount(raw: Any, output: str) -> tuple[str, Money]:
    try:
        commodity = raw["acommodity"]
        quantity = raw["aquantity"]
        if "decimalMantissa" in quantity and "decimalPlaces" in quantity:
            value = Decimal(int(quantity["decimalMantissa"])).scaleb(-int(quantity["decimalPlaces"]))
        else:
            value = Decimal(repr(float(quantity["floatingPoint"])))
        return str(commodity), Money.from_decimal(value)
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        raise ParseFailure(f"Malformed amount in hledger output: {raw!r}", output) from e
