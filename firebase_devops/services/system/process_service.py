"""
PID file bookkeeping and process shutdown for background emulator and tunnel processes.
"""
import os
import signal
import time
from pathlib import Path
from typing import Callable, List, Optional

from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)


def is_alive(pid: int) -> bool:
    """Check if a process exists without signalling it."""
    try:
        os.kill(pid, 0)  # Doesn't actually kill, just checks if process exists
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to another user
        return True


def stop_process(pid: int, grace_seconds: float = 2.0,
                 sleep: Callable[[float], None] = time.sleep,
                 process_group: bool = False) -> bool:
    """
    Stop a process gracefully, forcing it if it outlives the grace period.

    Args:
        pid: Process ID
        grace_seconds: Time between SIGTERM and SIGKILL
        sleep: Sleep function (injectable for tests)
        process_group: Signal the whole process group led by pid

    Returns:
        True if the process is gone afterwards
    """
    def _signal(sig):
        if process_group:
            os.killpg(pid, sig)
        else:
            os.kill(pid, sig)

    try:
        _signal(signal.SIGTERM)
    except ProcessLookupError:
        logger.debug("Process already stopped", extra={"pid": pid})
        return True

    sleep(grace_seconds)

    if is_alive(pid):
        logger.info("Process still running, forcing shutdown", extra={"pid": pid})
        try:
            _signal(signal.SIGKILL)
        except ProcessLookupError:
            return True
        sleep(1)

    return not is_alive(pid)


class PidFile:
    """
    One PID per line on disk. Stale entries (dead processes) are pruned on read.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def write(self, pids: List[int]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(''.join(f"{pid}\n" for pid in pids), encoding='utf-8')
        logger.debug("PID file written", extra={"pid_file": str(self.path), "pids": pids})

    def append(self, pid: int) -> None:
        self.write(self.read(prune=False) + [pid])

    def read(self, prune: bool = True) -> List[int]:
        if not self.path.exists():
            return []
        pids = []
        for line in self.path.read_text(encoding='utf-8').splitlines():
            line = line.strip()
            if line.isdigit():
                pids.append(int(line))
        if prune:
            live = [pid for pid in pids if is_alive(pid)]
            if len(live) != len(pids):
                if live:
                    self.write(live)
                else:
                    self.remove()
                logger.debug("Removed stale PID entries", extra={"pid_file": str(self.path)})
            pids = live
        return pids

    def running_pid(self) -> Optional[int]:
        """First live PID, or None (a stale file is removed)."""
        pids = self.read()
        return pids[0] if pids else None

    def remove(self) -> None:
        if self.path.exists():
            self.path.unlink()
