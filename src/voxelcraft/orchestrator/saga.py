"""Saga runner: ordered steps, stop on first failure, no compensation."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Sequence

from voxelcraft.models.errors import ErrorKind, OperationError, upstream_failure
from voxelcraft.models.operations import (
    OperationKind,
    SagaRecord,
    StepRecord,
    StepStatus,
)
from voxelcraft.models.records import TxResult

log = logging.getLogger(__name__)


class StepFailed(Exception):
    """Raised inside a saga body to stop at the failing step."""

    def __init__(self, step: str, error: OperationError) -> None:
        super().__init__(f"{step}: {error}")
        self.step = step
        self.error = error


class Saga:
    """One in-memory operation record plus the step executor.

    Steps run strictly in the order the body awaits them. Once a step
    fails (or the saga is cancelled) no later step starts.
    """

    def __init__(
        self, kind: OperationKind, steps: Sequence[str], parent: "Saga | None" = None,
    ) -> None:
        self.record = SagaRecord(
            id=uuid.uuid4().hex,
            kind=kind,
            steps=[StepRecord(name=name) for name in steps],
        )
        self._cancelled = False
        self._parent = parent

    @property
    def cancelled(self) -> bool:
        """True once this saga, or the batch it runs inside, was cancelled."""
        return self._cancelled or (self._parent is not None and self._parent.cancelled)

    @property
    def id(self) -> str:
        return self.record.id

    def idempotency_key(self, step: str) -> str:
        return f"{self.record.id}:{step}"

    async def step(self, name: str, action: Callable[[], Awaitable[Any]]) -> Any:
        """Run one step. A raised OperationError fails the saga at this step."""
        self.ensure_active(name)
        record = self.record.step(name)
        start = time.monotonic()
        try:
            value = await action()
        except OperationError as exc:
            record.duration_ms = int((time.monotonic() - start) * 1000)
            self._fail(record, exc)
        except Exception as exc:
            record.duration_ms = int((time.monotonic() - start) * 1000)
            log.exception("Saga %s step %s raised unexpectedly", self.id[:8], name)
            self._fail(record, upstream_failure(f"{name}: {exc}"))
        record.duration_ms = int((time.monotonic() - start) * 1000)
        record.status = StepStatus.SUCCEEDED
        log.debug("Saga %s step %s succeeded (%dms)", self.id[:8], name, record.duration_ms)
        return value

    def ensure_active(self, name: str) -> None:
        """Fail step ``name`` as CANCELLED if the saga has been cancelled."""
        if self.cancelled:
            self._fail(
                self.record.step(name), OperationError(ErrorKind.CANCELLED, "operation cancelled"),
            )

    async def ledger_step(self, name: str, action: Callable[[], Awaitable[TxResult]]) -> TxResult:
        """Run a ledger call step; a failed TxResult fails the step."""

        async def _checked() -> TxResult:
            result = await action()
            if result.tx_hash:
                self.record.tx_hash = result.tx_hash
            if not result.success:
                raise result.error or upstream_failure(f"{name}: ledger call failed")
            return result

        return await self.step(name, _checked)

    def best_effort_failed(self, name: str, error: OperationError) -> None:
        """Mark a step failed without failing the saga."""
        record = self.record.step(name)
        record.status = StepStatus.FAILED
        record.best_effort = True
        record.error = error
        log.warning("Saga %s best-effort step %s failed: %s", self.id[:8], name, error)

    def _fail(self, record: StepRecord, error: OperationError) -> None:
        record.status = StepStatus.FAILED
        record.error = error
        raise StepFailed(record.name, error)

    def finish(self, error: StepFailed | None = None) -> None:
        if self._cancelled:
            return
        if self.cancelled:
            self.cancel()
            return
        if error is None:
            self.record.outcome = "succeeded"
            return
        self.record.outcome = "failed"
        self.record.failed_step = error.step
        self.record.error = error.error

    def cancel(self) -> None:
        self._cancelled = True
        self.record.outcome = "cancelled"
        self.record.error = OperationError(ErrorKind.CANCELLED, "operation cancelled")
