"""Adapters — command runners for the host the workflow provisions.

Public re-exports for convenient access.
"""

from llmaura.adapters.base import CommandRunner
from llmaura.adapters.mock import MockCall, MockCommandRunner
from llmaura.adapters.shell.command import ShellCommandRunner

__all__ = [
    "CommandRunner",
    "MockCall",
    "MockCommandRunner",
    "ShellCommandRunner",
]
