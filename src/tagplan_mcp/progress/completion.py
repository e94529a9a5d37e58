"""Dependency-aware completion model.

``evaluate`` turns an audit snapshot into a ``ProgressReport``:

- a step's percentage is done tasks / all tasks (optional ones included);
- a step's own tasks are complete when every required task passes;
- a step is blocked when the step it depends on is not complete, and a
  blocked step is never reported complete;
- global progress is the weighted sum of step percentages;
- the next step is the first, in declaration order, that is neither
  complete nor blocked.

The model is total: missing or malformed audit fields make a task fail,
they never raise.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from fractions import Fraction
from math import floor

from pydantic import BaseModel

from .steps import STEPS, AuditSnapshot, DeploymentStep, Task

logger = logging.getLogger(__name__)

# What a predicate may raise on partial or malformed audit data
_AUDIT_SHAPE_ERRORS = (TypeError, AttributeError, KeyError, IndexError, ValueError)


class TaskStatus(BaseModel):
    id: str
    name: str
    optional: bool = False
    done: bool

    model_config = {"frozen": True}


class StepProgress(BaseModel):
    """Evaluated state of one deployment step.

    Attributes:
        progress: Percentage of tasks done (0-100, rounded half up).
        tasks_complete: Every required task passes.
        blocked: The step it depends on is not complete.
        is_complete: ``tasks_complete`` and not ``blocked``.
    """

    id: str
    name: str
    weight: float
    depends_on: str | None = None
    progress: int
    tasks_complete: bool
    blocked: bool
    is_complete: bool
    completed_count: int
    total_count: int
    tasks: list[TaskStatus]

    model_config = {"frozen": True}


class ProgressReport(BaseModel):
    steps: list[StepProgress]
    global_progress: int
    next_step: StepProgress | None = None
    pending_steps: list[StepProgress] = []
    is_complete: bool

    model_config = {"frozen": True}

    def step(self, step_id: str) -> StepProgress | None:
        return next((s for s in self.steps if s.id == step_id), None)


def round_half_up(value: Fraction) -> int:
    return floor(value + Fraction(1, 2))


def run_task(task: Task, audit: AuditSnapshot) -> bool:
    """Evaluate *task*, treating malformed audit data as "not satisfied"."""
    try:
        return bool(task.check(audit))
    except _AUDIT_SHAPE_ERRORS as e:
        logger.debug("Task %s not satisfied: %r", task.id, e)
        return False


def _evaluate_step(
    step: DeploymentStep,
    audit: AuditSnapshot,
    completed: dict[str, bool],
) -> StepProgress:
    statuses = [
        TaskStatus(
            id=task.id,
            name=task.name,
            optional=task.optional,
            done=run_task(task, audit),
        )
        for task in step.tasks
    ]
    done = sum(1 for s in statuses if s.done)
    total = len(statuses)
    progress = round_half_up(Fraction(done * 100, total)) if total else 0
    tasks_complete = all(s.done for s in statuses if not s.optional)
    blocked = step.depends_on is not None and not completed.get(
        step.depends_on, False
    )
    return StepProgress(
        id=step.id,
        name=step.name,
        weight=float(step.weight),
        depends_on=step.depends_on,
        progress=progress,
        tasks_complete=tasks_complete,
        blocked=blocked,
        is_complete=tasks_complete and not blocked,
        completed_count=done,
        total_count=total,
        tasks=statuses,
    )


def evaluate(
    audit: AuditSnapshot | None,
    steps: tuple[DeploymentStep, ...] = STEPS,
) -> ProgressReport:
    """Compute per-step and global completion for *audit*.

    Args:
        audit: Audit snapshot; ``None`` or non-mapping values are treated
            as an empty audit.
        steps: Step definitions, in dependency order.

    Returns:
        ``ProgressReport`` with steps in declaration order.
    """
    snapshot: AuditSnapshot = audit if isinstance(audit, Mapping) else {}

    completed: dict[str, bool] = {}
    results: list[StepProgress] = []
    weighted = Fraction(0)
    for step in steps:
        result = _evaluate_step(step, snapshot, completed)
        completed[step.id] = result.is_complete
        results.append(result)
        weighted += step.weight * result.progress

    pending = [s for s in results if not s.is_complete and not s.blocked]
    global_progress = round_half_up(weighted)
    return ProgressReport(
        steps=results,
        global_progress=global_progress,
        next_step=pending[0] if pending else None,
        pending_steps=pending,
        is_complete=global_progress >= 100,
    )


def actions_for_step(
    step_id: str,
    audit: AuditSnapshot | None,
    steps: tuple[DeploymentStep, ...] = STEPS,
) -> list[dict[str, str]]:
    """List the required tasks of *step_id* that do not pass yet.

    Returns an empty list for an unknown step.
    """
    step = next((s for s in steps if s.id == step_id), None)
    if step is None:
        return []
    snapshot: AuditSnapshot = audit if isinstance(audit, Mapping) else {}
    return [
        {"step_id": step_id, "task_id": task.id, "task_name": task.name}
        for task in step.tasks
        if not task.optional and not run_task(task, snapshot)
    ]


def progress_summary(report: ProgressReport) -> str:
    """One-line textual summary of *report*."""
    completed = sum(1 for s in report.steps if s.is_complete)
    total = len(report.steps)
    if report.is_complete:
        return f"Setup complete ({total}/{total} steps)"
    if report.global_progress == 0:
        return f"Nothing configured (0/{total} steps)"
    return (
        f"In progress ({completed}/{total} steps, "
        f"{report.global_progress}%)"
    )
