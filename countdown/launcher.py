from __future__ import annotations

import logging
import os
import signal
import subprocess
from pathlib import Path
from typing import IO, Callable, Optional, Sequence

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX
    fcntl = None  # type: ignore

logger = logging.getLogger(__name__)

ACTIVATE_SIGNAL = getattr(signal, "SIGUSR1", None)


class LaunchError(OSError):
    pass


def read_pid_file(path: Path) -> Optional[int]:
    try:
        return int(path.read_text(encoding="utf-8").strip())
    except FileNotFoundError:
        return None
    except ValueError:
        logger.warning("Ignoring malformed pid file %s", path)
        return None


def remove_pid_file(path: Path, pid: Optional[int] = None) -> None:
    """Remove the pid file if it still names ``pid`` (default: this process)."""
    owner = read_pid_file(path)
    if owner is not None and owner != (pid or os.getpid()):
        return
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def pid_file_locked(path: Path) -> bool:
    """True while a live timer process holds the lock on ``path``.

    The lock dies with its owner, so a pid file left by a crashed process
    reads as unlocked even after the OS hands its pid to someone else.
    """
    if fcntl is None:
        return False
    try:
        handle = path.open("r")
    except FileNotFoundError:
        return False
    with handle:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    return False


class PidFile:
    """Pid file held under an exclusive lock for the lifetime of the process."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._handle: Optional[IO[str]] = None
        self._pid: Optional[int] = None

    def acquire(self, pid: Optional[int] = None) -> bool:
        if self._handle is not None:
            return True
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = self.path.open("a+", encoding="utf-8")
        if fcntl is not None:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                handle.close()
                logger.warning("Another timer process holds %s, running without it", self.path)
                return False
        self._pid = pid or os.getpid()
        handle.seek(0)
        handle.truncate()
        handle.write(str(self._pid))
        handle.flush()
        self._handle = handle
        return True

    def release(self) -> None:
        if self._handle is None:
            return
        remove_pid_file(self.path, self._pid)
        if fcntl is not None:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        self._handle.close()
        self._handle = None


class ProcessLauncher:
    """Starts the timer process, or pokes an already running one."""

    def __init__(
        self,
        pid_path: Path,
        foreground: bool = False,
        startup_grace: float = 0.3,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.pid_path = Path(pid_path)
        self.foreground = foreground
        self.startup_grace = startup_grace
        self.popen = popen

    def running_instance(self) -> Optional[int]:
        pid = read_pid_file(self.pid_path)
        if pid is None or pid == os.getpid():
            return None
        if not pid_file_locked(self.pid_path):
            logger.info("Stale pid file %s (pid %s holds no lock)", self.pid_path, pid)
            return None
        return pid

    def launch_or_activate(self, target: Sequence[str], args: Sequence[str], new_instance: bool = False) -> None:
        if not new_instance and not self.foreground:
            pid = self.running_instance()
            if pid is not None and self._activate(pid):
                return
        self._spawn(list(target) + list(args))

    def _activate(self, pid: int) -> bool:
        if ACTIVATE_SIGNAL is None:
            return False
        try:
            os.kill(pid, ACTIVATE_SIGNAL)
        except ProcessLookupError:
            logger.info("Timer process %s exited before activation, starting a new one", pid)
            return False
        except PermissionError as exc:
            raise LaunchError(f"Not allowed to signal timer process {pid}: {exc}") from exc
        logger.info("Activated running timer process %s", pid)
        return True

    def _spawn(self, command: Sequence[str]) -> None:
        logger.info("Starting timer process: %s (foreground=%s)", " ".join(command), self.foreground)
        try:
            if self.foreground:
                proc = self.popen(list(command))
            else:
                proc = self.popen(
                    list(command),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
        except OSError as exc:
            raise LaunchError(f"Could not start {command[0]}: {exc}") from exc

        if self.foreground:
            returncode = proc.wait()
            if returncode != 0:
                raise LaunchError(f"Timer process exited with status {returncode}")
            return

        try:
            returncode = proc.wait(timeout=self.startup_grace)
        except subprocess.TimeoutExpired:
            logger.info("Timer process started (pid %s)", proc.pid)
            return
        if returncode != 0:
            raise LaunchError(f"Timer process exited right after launch with status {returncode}")
