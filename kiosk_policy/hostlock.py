# hostlock.py
# Advisory lock so only one deploy / remove touches the host at a time

import os
import tempfile
import time

import psutil
from loguru import logger

from .errors import LockHeldError

# an unreadable lock younger than this may still be mid-write by another tool
UNREADABLE_GRACE_SECONDS = 10.0


class HostLock:
    """Lock file holding the owner's PID. A PID that is no longer alive marks the lock stale.

    The lock file is linked into place with its content already written, so a
    lock taken by this class is never observed empty.
    """

    def __init__(self, path):
        self.path = path
        self.held = False

    def _read_pid(self):
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return int(f.read().strip() or 0)
        except (OSError, ValueError):
            return 0

    def _age(self):
        try:
            return time.time() - os.path.getmtime(self.path)
        except OSError:
            return 0.0

    def _try_create(self):
        fd, tmp_path = tempfile.mkstemp(prefix=".hostlock-", dir=os.path.dirname(os.path.abspath(self.path)))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(str(os.getpid()))
            os.link(tmp_path, self.path)
        except FileExistsError:
            return False
        finally:
            os.remove(tmp_path)
        return True

    def acquire(self):
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        if self._try_create():
            self.held = True
            return

        pid = self._read_pid()
        if pid and pid != os.getpid() and psutil.pid_exists(pid):
            raise LockHeldError(f"Another deployment (pid={pid}) holds {self.path}")
        if not pid and self._age() < UNREADABLE_GRACE_SECONDS:
            raise LockHeldError(f"{self.path} exists but holds no PID yet, try again shortly")

        logger.warning(f"[lock] Removing stale lock {self.path} (pid={pid or 'unknown'})")
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        if not self._try_create():
            raise LockHeldError(f"Lost the race for {self.path}")
        self.held = True

    def release(self):
        if not self.held:
            return
        self.held = False
        try:
            os.remove(self.path)
        except FileNotFoundError:
            logger.warning(f"[lock] Lock file {self.path} already gone")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
