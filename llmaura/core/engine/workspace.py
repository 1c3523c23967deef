"""
Scoped temporary workspace — a build/download directory that never leaks.

A workspace is a uniquely named directory owned by one step. It is
removed when the step's scope ends, whatever ended it: success, a
failed action, or an interruption signal turned into ``RunInterrupted``
by ``interruption_guard()``.

TMPDIR handling:
    - TMPDIR already set → the directory is created inside it and
      TMPDIR is left alone.
    - TMPDIR unset → the directory is created under the base path and
      TMPDIR points at it until release, then is unset again.

Release is idempotent and serialised by a lock, so a signal-triggered
cleanup racing the normal ``finally`` path removes the directory once.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import FrameType, TracebackType

logger = logging.getLogger(__name__)

TMPDIR_VAR = "TMPDIR"
WORKSPACE_PREFIX = "llmaura-"

_HANDLED_SIGNALS = tuple(
    s for s in (
        getattr(signal, "SIGINT", None),
        getattr(signal, "SIGTERM", None),
        getattr(signal, "SIGHUP", None),
    )
    if s is not None
)


class RunInterrupted(BaseException):
    """Raised in the main thread when the process receives a stop signal.

    Derives from BaseException, like KeyboardInterrupt, so the
    ``except Exception`` around step actions does not swallow it.
    """

    def __init__(self, signum: int):
        self.signum = signum
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        super().__init__(f"interrupted by signal {name}")


class WorkspaceError(Exception):
    """Raised when a workspace cannot be acquired."""


class TemporaryWorkspace:
    """A uniquely named directory with guaranteed cleanup.

    Args:
        base_path: Parent directory used when TMPDIR is not set.
        owner: Optional account that should own the directory.
        group: Optional group for the directory.
        mode: Permission bits for the directory.
    """

    def __init__(
        self,
        base_path: str | Path,
        owner: str | None = None,
        group: str | None = None,
        mode: int = 0o700,
    ):
        self._base_path = Path(base_path)
        self._owner = owner
        self._group = group
        self._mode = mode

        self._path: Path | None = None
        self._set_tmpdir = False
        self._prior_tmpdir: str | None = None
        self._released = False
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        if self._path is None:
            raise WorkspaceError("Workspace has not been acquired")
        return self._path

    @property
    def acquired(self) -> bool:
        return self._path is not None and not self._released

    @property
    def released(self) -> bool:
        return self._released

    @property
    def overrides_tmpdir(self) -> bool:
        """Whether this workspace set TMPDIR itself."""
        return self._set_tmpdir

    def acquire(self) -> Path:
        """Create the directory and, when TMPDIR is unset, point TMPDIR at it."""
        with self._lock:
            if self._path is not None:
                raise WorkspaceError(f"Workspace already acquired: {self._path}")

            self._prior_tmpdir = os.environ.get(TMPDIR_VAR)
            parent = Path(self._prior_tmpdir) if self._prior_tmpdir else self._base_path

            path: Path | None = None
            try:
                parent.mkdir(parents=True, exist_ok=True)
                path = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=parent))
                os.chmod(path, self._mode)
                if self._owner or self._group:
                    shutil.chown(path, user=self._owner, group=self._group)
            except (OSError, LookupError) as e:
                if path is not None:
                    shutil.rmtree(path, ignore_errors=True)
                raise WorkspaceError(f"Cannot create workspace under {parent}: {e}") from e
            except BaseException:
                if path is not None:
                    shutil.rmtree(path, ignore_errors=True)
                raise

            self._path = path
            if self._prior_tmpdir is None:
                os.environ[TMPDIR_VAR] = str(path)
                self._set_tmpdir = True

            logger.debug("Workspace acquired: %s (tmpdir override=%s)", path, self._set_tmpdir)
            return path

    def release(self) -> None:
        """Remove the directory and restore TMPDIR. Safe to call repeatedly."""
        with self._lock:
            if self._released or self._path is None:
                self._released = True
                return
            self._released = True

            if self._set_tmpdir:
                if self._prior_tmpdir is None:
                    os.environ.pop(TMPDIR_VAR, None)
                else:
                    os.environ[TMPDIR_VAR] = self._prior_tmpdir

            try:
                shutil.rmtree(self._path)
                logger.debug("Workspace removed: %s", self._path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Failed to remove workspace %s: %s", self._path, e)

    def __enter__(self) -> TemporaryWorkspace:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"<TemporaryWorkspace path={self._path} released={self._released}>"


@contextmanager
def interruption_guard(signals: tuple[int, ...] = _HANDLED_SIGNALS) -> Iterator[None]:
    """Turn stop signals into ``RunInterrupted`` for the duration of the block.

    Signal handlers can only be installed from the main thread; anywhere
    else the guard is a no-op and default signal handling applies.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum: int, frame: FrameType | None) -> None:
        raise RunInterrupted(signum)

    previous: dict[int, object] = {}
    for signum in signals:
        previous[signum] = signal.signal(signum, _handler)
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
