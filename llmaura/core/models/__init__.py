"""
Domain models — Pydantic types and step definitions.

All models are re-exported here for convenient access:

    from llmaura.core.models import InstallationTarget, Step, StepResult, RunReport
"""

from llmaura.core.models.result import CommandResult
from llmaura.core.models.run import LogEntry, LogLevel, RunLog, RunReport, RunState
from llmaura.core.models.step import (
    NO_RETRY,
    Criticality,
    RetryPolicy,
    Step,
    StepOutcome,
    StepResult,
    StepStatus,
)
from llmaura.core.models.target import (
    InstallationTarget,
    PackageFamily,
    Platform,
    PortRedirect,
    UnsupportedPlatformError,
    WebUIAccountPolicy,
)

__all__ = [
    # result.py
    "CommandResult",
    # run.py
    "LogEntry",
    "LogLevel",
    "RunLog",
    "RunReport",
    "RunState",
    # step.py
    "NO_RETRY",
    "Criticality",
    "RetryPolicy",
    "Step",
    "StepOutcome",
    "StepResult",
    "StepStatus",
    # target.py
    "InstallationTarget",
    "PackageFamily",
    "Platform",
    "PortRedirect",
    "UnsupportedPlatformError",
    "WebUIAccountPolicy",
]
