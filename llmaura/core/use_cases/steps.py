"""
Steps use case — describe the workflow without running it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from llmaura.core.config.loader import ConfigError, load_target
from llmaura.core.models.target import UnsupportedPlatformError
from llmaura.core.services.workflow import build_workflow


@dataclass
class StepInfo:
    name: str
    description: str
    criticality: str
    max_attempts: int
    retry_delay: float
    has_fallback: bool
    uses_workspace: bool

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "criticality": self.criticality,
            "max_attempts": self.max_attempts,
            "retry_delay": self.retry_delay,
            "has_fallback": self.has_fallback,
            "uses_workspace": self.uses_workspace,
        }


@dataclass
class StepsResult:
    platform: str = ""
    steps: list[StepInfo] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {"platform": self.platform, "steps": [s.to_dict() for s in self.steps]}


def list_steps(config_path: Path | None = None, platform: str | None = None) -> StepsResult:
    """The ordered steps an install would go through on this target."""
    result = StepsResult()

    try:
        target = load_target(config_path, platform_override=platform)
    except (ConfigError, UnsupportedPlatformError) as e:
        result.error = str(e)
        return result

    result.platform = target.platform.label
    result.steps = [
        StepInfo(
            name=step.name,
            description=step.description,
            criticality=step.criticality.value,
            max_attempts=step.retry.max_attempts,
            retry_delay=step.retry.delay,
            has_fallback=step.fallback is not None,
            uses_workspace=step.uses_workspace,
        )
        for step in build_workflow(target)
    ]
    return result
