"""Pending change set: detected edits waiting for the user's decision.

The core never writes files. A confirmed set hands each :class:`CodeDiff`
to the host's :class:`FileOperations` collaborator, which owns backups,
restores and version-control staging. Cancelled or abandoned sets are
discarded without touching the filesystem.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Iterator, Protocol, Sequence, runtime_checkable

from ..ai.errors import CodepairError
from .matcher import CodeDiff, CodeMatcher
from .modifications import CodeModificationOp

__all__ = [
    "Decision",
    "PendingChange",
    "FailedChange",
    "ApplyReport",
    "FileOperations",
    "PendingChangeSet",
]

LOGGER = logging.getLogger(__name__)


class Decision(str, Enum):
    """The host's ternary decision over a pending set."""

    CONFIRM = "confirm"
    CANCEL = "cancel"
    ABANDON = "abandon"


@dataclass(slots=True, frozen=True)
class PendingChange:
    operation: CodeModificationOp
    diff: CodeDiff


@dataclass(slots=True, frozen=True)
class FailedChange:
    """An operation whose diff could not be computed (other changes are unaffected)."""

    operation: CodeModificationOp
    error: CodepairError

    @property
    def message(self) -> str:
        return self.error.message


@dataclass(slots=True)
class ApplyReport:
    applied: list[CodeDiff] = field(default_factory=list)
    errors: list[tuple[CodeDiff, Exception]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@runtime_checkable
class FileOperations(Protocol):
    """Host collaborator that performs the actual write/delete."""

    def apply(self, diff: CodeDiff) -> Awaitable[Any] | Any:
        ...


class PendingChangeSet:
    """Ordered ``(operation, diff)`` pairs plus per-operation failures."""

    def __init__(
        self,
        changes: Sequence[PendingChange] = (),
        failures: Sequence[FailedChange] = (),
    ) -> None:
        self._changes: list[PendingChange] = list(changes)
        self._failures: list[FailedChange] = list(failures)
        self._decision: Decision | None = None

    @classmethod
    def build(cls, operations: Sequence[CodeModificationOp], matcher: CodeMatcher) -> PendingChangeSet:
        changes: list[PendingChange] = []
        failures: list[FailedChange] = []
        for operation in operations:
            try:
                diff = matcher.compute_diff(operation)
            except CodepairError as exc:
                LOGGER.warning("Could not prepare %s for %s: %s", operation.kind, operation.path, exc.message)
                failures.append(FailedChange(operation=operation, error=exc))
                continue
            except OSError as exc:
                LOGGER.warning("Could not read %s: %s", operation.path, exc)
                failures.append(
                    FailedChange(operation=operation, error=CodepairError(f"Cannot read {operation.path}: {exc}"))
                )
                continue
            if diff.is_noop:
                LOGGER.debug("Skipping no-op change for %s", operation.path)
                continue
            changes.append(PendingChange(operation=operation, diff=diff))
        return cls(changes, failures)

    @property
    def changes(self) -> tuple[PendingChange, ...]:
        return tuple(self._changes)

    @property
    def failures(self) -> tuple[FailedChange, ...]:
        return tuple(self._failures)

    @property
    def decision(self) -> Decision | None:
        return self._decision

    @property
    def is_pending(self) -> bool:
        return self._decision is None and bool(self._changes)

    def is_empty(self) -> bool:
        return not self._changes

    def __len__(self) -> int:
        return len(self._changes)

    def __iter__(self) -> Iterator[PendingChange]:
        return iter(tuple(self._changes))

    def __bool__(self) -> bool:
        return bool(self._changes)

    async def decide(self, decision: Decision | str, file_operations: FileOperations | None = None) -> ApplyReport:
        decision = Decision(decision)
        if decision is Decision.CONFIRM:
            if file_operations is None:
                raise ValueError("Confirming changes requires a file operations collaborator")
            return await self.confirm(file_operations)
        if decision is Decision.CANCEL:
            self.cancel()
        else:
            self.abandon()
        return ApplyReport()

    async def confirm(self, file_operations: FileOperations) -> ApplyReport:
        """Hand every diff, in order, to ``file_operations``."""
        self._ensure_undecided()
        self._decision = Decision.CONFIRM
        report = ApplyReport()
        for change in self._changes:
            try:
                result = file_operations.apply(change.diff)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                LOGGER.warning("Applying change to %s failed: %s", change.diff.file_path, exc)
                report.errors.append((change.diff, exc))
                continue
            report.applied.append(change.diff)
        LOGGER.info("Applied %s of %s confirmed change(s)", len(report.applied), len(self._changes))
        return report

    def cancel(self) -> None:
        """The user rejected the changes."""
        self._discard(Decision.CANCEL)

    def abandon(self) -> None:
        """The changes were left undecided (e.g. a new turn started)."""
        self._discard(Decision.ABANDON)

    def _discard(self, decision: Decision) -> None:
        self._ensure_undecided()
        self._decision = decision
        LOGGER.debug("Discarding %s pending change(s) (%s)", len(self._changes), decision.value)
        self._changes.clear()

    def _ensure_undecided(self) -> None:
        if self._decision is not None:
            raise RuntimeError(f"Pending changes were already resolved ({self._decision.value})")
