"""Deployment progress: step completion model and audit KPI."""

from .completion import (
    ProgressReport,
    StepProgress,
    actions_for_step,
    evaluate,
    progress_summary,
)
from .kpi import KpiReport, calculate_kpi
from .steps import STEPS, DeploymentStep, Task

__all__ = [
    "STEPS",
    "DeploymentStep",
    "KpiReport",
    "ProgressReport",
    "StepProgress",
    "Task",
    "actions_for_step",
    "calculate_kpi",
    "evaluate",
    "progress_summary",
]
