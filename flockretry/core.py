import os
import time
import logging
import subprocess
from typing import Callable, List, Optional

from .lock import DEFAULT_RETRIES, RetryLock
from .utils import DEFAULT_MODE

logger = logging.getLogger(__name__)


class LockedCommand:
    """Run a command while holding a lock on a file"""

    def __init__(self,
                 path: str,
                 command: Optional[List[str]] = None,
                 retries: int = DEFAULT_RETRIES,
                 shared: bool = False,
                 mode: int = DEFAULT_MODE,
                 retry_callback: Optional[Callable[[int, int], None]] = None):
        self.path = os.path.abspath(path)
        self.command = list(command or [])
        self.lock = RetryLock(
            self.path,
            retries=retries,
            shared=shared,
            mode=mode,
            retry_callback=retry_callback
        )
        self.waited = 0.0
        self.returncode: Optional[int] = None

    def run(self) -> int:
        """Acquire the lock, run the command, release the lock

        Without a command the lock is only probed. Returns the exit code.
        """
        start = time.monotonic()
        self.lock.acquire()
        self.waited = time.monotonic() - start

        try:
            if not self.command:
                logger.info(f"lock on '{self.path}' is available")
                self.returncode = 0
            else:
                logger.info(f"running {self.command[0]} under lock '{self.path}'")
                self.returncode = subprocess.call(self.command)
        finally:
            self.lock.release()

        return self.returncode
