# state.py
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .model import TargetState


# Pending -> Running -> {Succeeded, Failed}
_TRANSITIONS = {
    TargetState.PENDING: {TargetState.RUNNING},
    TargetState.RUNNING: {TargetState.SUCCEEDED, TargetState.FAILED},
    TargetState.SUCCEEDED: set(),
    TargetState.FAILED: set(),
}


@dataclass
class TargetRecord:
    name: str
    state: TargetState = TargetState.PENDING
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    error: Optional[str] = None

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at


class StateStore:
    """
    Records what happened to each target of a plan during one session.

    Observability only: nothing here decides whether a target runs.
    """

    def __init__(self) -> None:
        self._records: Dict[str, TargetRecord] = {}
        self.started_at: Optional[float] = None

    def begin(self, names: Iterable[str]) -> None:
        self._records = {name: TargetRecord(name=name) for name in names}
        self.started_at = time.time()

    def _record(self, name: str) -> TargetRecord:
        try:
            return self._records[name]
        except KeyError:
            raise KeyError(f"Target '{name}' is not part of the current plan") from None

    def _move(self, name: str, new_state: TargetState) -> TargetRecord:
        rec = self._record(name)
        if new_state not in _TRANSITIONS[rec.state]:
            raise ValueError(
                f"Illegal state transition for '{name}': {rec.state.value} -> {new_state.value}"
            )
        rec.state = new_state
        return rec

    def mark_running(self, name: str) -> None:
        rec = self._move(name, TargetState.RUNNING)
        rec.started_at = time.time()

    def mark_succeeded(self, name: str) -> None:
        rec = self._move(name, TargetState.SUCCEEDED)
        rec.finished_at = time.time()

    def mark_failed(self, name: str, error: str) -> None:
        rec = self._move(name, TargetState.FAILED)
        rec.finished_at = time.time()
        rec.error = error

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, name: str) -> TargetState:
        return self._record(name).state

    def record(self, name: str) -> TargetRecord:
        return self._record(name)

    def records(self) -> List[TargetRecord]:
        return list(self._records.values())

    def _names_in(self, state: TargetState) -> List[str]:
        return [r.name for r in self._records.values() if r.state is state]

    def completed(self) -> List[str]:
        return self._names_in(TargetState.SUCCEEDED)

    def failed(self) -> List[str]:
        return self._names_in(TargetState.FAILED)

    def pending(self) -> List[str]:
        return self._names_in(TargetState.PENDING)

    @property
    def succeeded(self) -> bool:
        return bool(self._records) and all(
            r.state is TargetState.SUCCEEDED for r in self._records.values()
        )

    def summary(self) -> Dict[str, str]:
        return {name: rec.state.value for name, rec in self._records.items()}
