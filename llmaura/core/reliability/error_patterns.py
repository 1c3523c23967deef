"""
Failure classification — a pattern table over captured command output.

Installers and package managers report what went wrong only as text.
Instead of scattering substring checks through the steps, every known
failure signature lives in ``FAILURE_PATTERNS`` as a ``(regex, kind)``
row, and every kind maps to a retry classification in
``KIND_CLASSIFICATION``. Adding a new signature is one more row.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from llmaura.core.models.result import CommandResult


class ErrorKind(StrEnum):
    """What a failed command most likely ran into."""

    DISK_FULL = "disk_full"
    MISSING_PACKAGE = "missing_package"
    PERMISSION_DENIED = "permission_denied"
    PACKAGE_LOCK = "package_lock"
    NETWORK = "network"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class Classification(StrEnum):
    """Whether another attempt can reasonably succeed."""

    RETRYABLE = "retryable"
    TERMINAL = "terminal"


# First match wins, so the more specific signatures come first.
FAILURE_PATTERNS: list[tuple[re.Pattern[str], ErrorKind]] = [
    (re.compile(r"no space left on device|disk quota exceeded|not enough free space", re.I),
     ErrorKind.DISK_FULL),
    (re.compile(r"could not get lock|dpkg frontend lock|unable to acquire the dpkg|"
                r"waiting for cache lock|another app is currently holding", re.I),
     ErrorKind.PACKAGE_LOCK),
    (re.compile(r"unable to locate package|no matching packages? to install|"
                r"has no installation candidate|no match for argument|unable to find a match|"
                r"no matching distribution found|could not find a version that satisfies", re.I),
     ErrorKind.MISSING_PACKAGE),
    (re.compile(r"permission denied|operation not permitted|must be run as root", re.I),
     ErrorKind.PERMISSION_DENIED),
    (re.compile(r"timed out|timeout", re.I),
     ErrorKind.TIMEOUT),
    (re.compile(r"could not resolve host|temporary failure in name resolution|"
                r"connection (?:refused|reset|timed out)|network is unreachable|"
                r"failed to connect|tls handshake|i/o timeout|"
                r"pull model manifest|max retries exceeded", re.I),
     ErrorKind.NETWORK),
]

KIND_CLASSIFICATION: dict[ErrorKind, Classification] = {
    ErrorKind.DISK_FULL: Classification.TERMINAL,
    ErrorKind.MISSING_PACKAGE: Classification.TERMINAL,
    ErrorKind.PERMISSION_DENIED: Classification.TERMINAL,
    ErrorKind.PACKAGE_LOCK: Classification.RETRYABLE,
    ErrorKind.NETWORK: Classification.RETRYABLE,
    ErrorKind.TIMEOUT: Classification.RETRYABLE,
    ErrorKind.UNKNOWN: Classification.RETRYABLE,
}


def match_error_kind(text: str) -> ErrorKind:
    """Return the first ErrorKind whose pattern matches ``text``."""
    if not text:
        return ErrorKind.UNKNOWN
    for pattern, kind in FAILURE_PATTERNS:
        if pattern.search(text):
            return kind
    return ErrorKind.UNKNOWN


def classify_failure(result: CommandResult) -> Classification:
    """Default retry classifier: look the failure up in the pattern table."""
    kind = match_error_kind(result.combined_output)
    return KIND_CLASSIFICATION.get(kind, Classification.RETRYABLE)


def always_retry(result: CommandResult) -> Classification:
    """Classifier for actions where every failure is worth another attempt."""
    return Classification.RETRYABLE
