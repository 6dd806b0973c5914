# matplan/record.py

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Tuple

from .executor import CPUExecutor


@dataclass(frozen=True)
class EvaluationEvent:
    """
    A single node evaluation observed during execution.
    """

    execution: int
    index: int
    kind: str
    shape: Tuple[int, ...]
    cached: bool


class Trace:
    """
    Recording of one or more executions on a CPUExecutor.

    Responsibilities:
      - Capture every node evaluation, including cache hits.
      - Summarise how often each kind of operation actually ran.
    """

    def __init__(self, executor: CPUExecutor) -> None:
        self.executor = executor
        self._events: List[EvaluationEvent] = []
        self._executions = 0
        self._taps: List[Tuple[str, ...]] = []
        self._active = False

    # ------------------------------------------------------------------ control
    def start(self) -> None:
        if self._active:
            return
        self._events.clear()
        self._taps.clear()
        self._executions = 0
        self.executor.register_event_listener(self._handle_event)
        self._active = True

    def stop(self) -> None:
        if not self._active:
            return
        self.executor.unregister_event_listener(self._handle_event)
        self._active = False

    # ---------------------------------------------------------------- listeners
    def _handle_event(self, payload: Dict[str, Any]) -> None:
        kind = payload.get("event")
        if kind == "node_eval":
            self._events.append(
                EvaluationEvent(
                    execution=self._executions,
                    index=int(payload["index"]),
                    kind=str(payload["kind"]),
                    shape=tuple(int(dim) for dim in payload.get("shape", ())),
                    cached=bool(payload["cached"]),
                )
            )
        elif kind == "execute_end":
            self._taps.append(tuple(payload.get("taps", ())))
            self._executions += 1

    # ----------------------------------------------------------------- metadata
    @property
    def events(self) -> Tuple[EvaluationEvent, ...]:
        return tuple(self._events)

    @property
    def executions(self) -> int:
        return self._executions

    def evaluations(self, kind: str) -> int:
        """Number of times an operation of ``kind`` was computed (cache hits excluded)."""
        return sum(1 for event in self._events if event.kind == kind and not event.cached)

    def summary(self) -> Dict[str, Any]:
        kinds: Dict[str, int] = {}
        for event in self._events:
            if not event.cached:
                kinds[event.kind] = kinds.get(event.kind, 0) + 1
        return {
            "executions": self._executions,
            "events": len(self._events),
            "kinds": kinds,
            "cache_hits": sum(1 for event in self._events if event.cached),
            "taps": list(self._taps),
        }


@contextmanager
def record(executor: CPUExecutor) -> Iterator[Trace]:
    """
    Context manager recording every execution run on ``executor``.

    Usage:
        executor = CPUExecutor()
        with matplan.record(executor) as trace:
            executor.execute(plan, inputs)
        trace.evaluations("sigmoid")
    """
    trace = Trace(executor)
    trace.start()
    try:
        yield trace
    finally:
        trace.stop()
