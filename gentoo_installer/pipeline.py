from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .state_store import is_step_completed, mark_step_completed

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single idempotent step."""

    step_id: str

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class PipelineResult:
    state: Dict[str, Any]
    ran_steps: List[str]
    skipped_steps: List[str]


def _check_step_id(steps: Sequence[Step], step_id: Optional[str], flag: str) -> None:
    if step_id is not None and step_id not in {s.step_id for s in steps}:
        known = ", ".join(s.step_id for s in steps)
        raise ValueError(f"{flag}: unknown step {step_id!r} (known: {known})")


def run_pipeline(
    *,
    state: Dict[str, Any],
    steps: Sequence[Step],
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
) -> PipelineResult:
    """Run steps in order; completed steps are skipped unless force is set."""

    _check_step_id(steps, start_at, "--start-at")
    _check_step_id(steps, stop_after, "--stop-after")

    ran: List[str] = []
    skipped: List[str] = []
    exe = state.setdefault("execution", {})

    started = start_at is None
    for step in steps:
        started = started or step.step_id == start_at
        if not started:
            continue

        exe["current_step"] = step.step_id

        if not force and is_step_completed(state, step.step_id):
            logger.info("Skipping step %s (already completed)", step.step_id)
            skipped.append(step.step_id)
        else:
            logger.info("Running step %s", step.step_id)
            t0 = time.monotonic()
            state = step.run(state)
            exe = state.setdefault("execution", {})
            exe.setdefault("step_seconds", {})[step.step_id] = round(time.monotonic() - t0, 3)
            mark_step_completed(state, step.step_id)
            ran.append(step.step_id)

        if step.step_id == stop_after:
            logger.info("Stopping after %s", stop_after)
            break

    exe["current_step"] = None
    return PipelineResult(state=state, ran_steps=ran, skipped_steps=skipped)
