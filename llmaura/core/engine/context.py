"""
Step context — everything a step's precondition and actions can see.

The installation target is immutable; the run log is the only shared
mutable state, and it is append-only. The sequencer attaches the step's
workspace while the step runs and detaches it afterwards.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from llmaura.adapters.base import CommandRunner
from llmaura.core.engine.workspace import TemporaryWorkspace, WorkspaceError
from llmaura.core.models.run import RunLog
from llmaura.core.models.target import InstallationTarget

if TYPE_CHECKING:
    from llmaura.core.services.probes import HostProbe


@dataclass
class StepContext:
    """Runtime collaborators handed to every step."""

    target: InstallationTarget
    runner: CommandRunner
    probe: HostProbe
    run_log: RunLog = field(default_factory=RunLog)
    sleep: Callable[[float], None] = time.sleep
    workspace: TemporaryWorkspace | None = None
    chown_workspaces: bool = True

    @property
    def workspace_path(self) -> Path:
        """Directory of the active workspace (only inside workspace steps)."""
        if self.workspace is None or not self.workspace.acquired:
            raise WorkspaceError("This step has no active workspace")
        return self.workspace.path
