"""Test orchestration for s3verify.

Two layers live here:

* ``run_concurrently`` fans a batch of independent checks out as asyncio
  tasks and collects exactly one result per check over a queue, matching
  results to checks by dispatch index.
* ``run_tests`` walks the ordered ``ApiTest`` table, reports each outcome
  to a ``Reporter`` and always runs cleanup at the end.
"""

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TextIO, TypeVar

from s3verify import metrics
from s3verify.errors import CleanupError, S3VerifyError

logger = logging.getLogger(__name__)

T = TypeVar("T")
C = TypeVar("C")


@dataclass
class _Outcome(Generic[T]):
    index: int
    value: T | None = None
    error: BaseException | None = None


async def run_concurrently(
    checks: Sequence[Callable[[], Awaitable[T]]], limit: int | None = None
) -> list[T]:
    """Run independent checks concurrently and return their results in order.

    Every check delivers exactly one outcome (value or error) to a queue
    sized to the number of checks, tagged with its dispatch index.  All
    outcomes are drained before this returns, even after a failure.

    Args:
        checks: Zero-argument coroutine functions.
        limit: Maximum number of checks in flight, or None for no bound.

    Returns:
        The check results, in the order the checks were given.

    Raises:
        The error of the lowest-indexed failing check.
    """
    total = len(checks)
    if total == 0:
        return []

    queue: asyncio.Queue[_Outcome[T]] = asyncio.Queue(maxsize=total)
    semaphore = asyncio.Semaphore(limit) if limit else None

    async def worker(index: int, check: Callable[[], Awaitable[T]]) -> None:
        try:
            if semaphore is not None:
                async with semaphore:
                    value = await check()
            else:
                value = await check()
        except Exception as exc:
            await queue.put(_Outcome(index=index, error=exc))
        else:
            await queue.put(_Outcome(index=index, value=value))

    tasks = [asyncio.create_task(worker(i, check)) for i, check in enumerate(checks)]

    outcomes: dict[int, _Outcome[T]] = {}
    for _ in range(total):
        outcome = await queue.get()
        outcomes[outcome.index] = outcome
    await asyncio.gather(*tasks)

    results: list[T] = []
    for index in range(total):
        outcome = outcomes[index]
        if outcome.error is not None:
            raise outcome.error
        results.append(outcome.value)  # type: ignore[arg-type]
    return results


class Reporter(Protocol):
    """Observer for test progress. Return values are ignored."""

    def start(self, index: int, total: int, name: str) -> None: ...

    def finish(self, index: int, total: int, name: str, error: BaseException | None) -> None: ...

    def cleanup_failed(self, error: BaseException) -> None: ...


class ConsoleReporter:
    """Prints ``[NN/TOTAL] Name: Passed`` style lines."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream if stream is not None else sys.stdout

    @staticmethod
    def label(index: int, total: int, name: str) -> str:
        return f"[{index:02d}/{total}] {name}:"

    def start(self, index: int, total: int, name: str) -> None:
        print(self.label(index, total, name), end=" ", file=self.stream, flush=True)

    def finish(self, index: int, total: int, name: str, error: BaseException | None) -> None:
        if error is None:
            print("Passed", file=self.stream, flush=True)
        else:
            print(f"Failed: {error}", file=self.stream, flush=True)

    def cleanup_failed(self, error: BaseException) -> None:
        print(f"Cleanup Failed: {error}", file=self.stream, flush=True)


@dataclass
class ApiTest(Generic[C]):
    """One entry of the ordered test table.

    Attributes:
        name: Display name.
        func: Coroutine function taking the shared suite context.
        extended: Only run when extended tests are requested.
        critical: A failure stops the remaining tests.
    """

    name: str
    func: Callable[[C], Awaitable[None]]
    extended: bool = False
    critical: bool = False


@dataclass
class RunSummary:
    """Outcome of a suite run."""

    total: int = 0
    passed: list[str] = field(default_factory=list)
    failures: list[tuple[str, BaseException]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    aborted: bool = False
    cleanup_error: BaseException | None = None

    @property
    def primary_failure(self) -> BaseException | None:
        """The first test failure, or the cleanup failure if no test failed."""
        if self.failures:
            return self.failures[0][1]
        return self.cleanup_error

    @property
    def ok(self) -> bool:
        return self.primary_failure is None


async def run_tests(
    tests: Sequence[ApiTest[C]],
    context: C,
    reporter: Reporter,
    extended: bool = False,
    cleanup: Callable[[C], Awaitable[None]] | None = None,
) -> RunSummary:
    """Run the test table in order, then clean up.

    Non-extended tests always run; extended ones only when ``extended`` is
    set.  A failing critical test stops the run.  Cleanup runs even if a
    test raised something other than ``S3VerifyError``; a cleanup failure
    is recorded but never replaces an earlier test failure.
    """
    selected = [test for test in tests if extended or not test.extended]
    summary = RunSummary(total=len(selected))
    summary.skipped = [test.name for test in tests if test.extended and not extended]

    try:
        for index, test in enumerate(selected, start=1):
            reporter.start(index, summary.total, test.name)
            try:
                await test.func(context)
            except S3VerifyError as exc:
                reporter.finish(index, summary.total, test.name, exc)
                metrics.record_check(False)
                logger.error("%s failed: %s", test.name, exc, extra={"test": test.name})
                summary.failures.append((test.name, exc))
                if test.critical:
                    summary.aborted = True
                    summary.skipped.extend(t.name for t in selected[index:])
                    break
            else:
                reporter.finish(index, summary.total, test.name, None)
                metrics.record_check(True)
                logger.info("%s passed", test.name, extra={"test": test.name})
                summary.passed.append(test.name)
    finally:
        if cleanup is not None:
            try:
                await cleanup(context)
            except CleanupError as exc:
                reporter.cleanup_failed(exc)
                logger.error("Cleanup failed: %s", exc)
                summary.cleanup_error = exc

    return summary


def describe(summary: RunSummary) -> dict[str, Any]:
    """Flatten a summary into a loggable mapping."""
    return {
        "total": summary.total,
        "passed": len(summary.passed),
        "failed": len(summary.failures),
        "skipped": len(summary.skipped),
        "aborted": summary.aborted,
        "cleanup_failed": summary.cleanup_error is not None,
    }
