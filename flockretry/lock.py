"""Lock mechanism for cross-process mutual exclusion

An advisory flock() on a lock file, retried every second while another
process holds it, with the (empty) lock file removed again on release.

flock() binds to an inode, not a path. Between opening the path and getting
the lock another process may unlink the file and create a new one under the
same name; a lock on the old inode excludes nobody. The file identity is
therefore checked before and after locking and the attempt restarted when
they disagree.

Caveats: POSIX only. Filesystems without flock() support or stable inode
numbers (some network filesystems) are not supported. Two RetryLock objects
in one process contend with each other only because flock() locks belong to
the open file description; no in-process mutex is added on top.
"""

import os
import time
import fcntl
import logging
import warnings
from typing import BinaryIO, Callable, Optional, Union

from .errors import AcquireTimeoutError, LockError, OpenError
from .utils import DEFAULT_MODE, file_identity, file_mode_for

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = 60
RETRY_INTERVAL = 1


class RetryLock:
    """File-based advisory lock with automatic retry and cleanup

    Prefer ``with lock(path):`` so the lock is released deterministically.
    An unreleased lock is released when the object is garbage collected,
    but when that happens is up to the interpreter.
    """

    def __init__(self,
                 path: Union[str, os.PathLike],
                 retries: int = DEFAULT_RETRIES,
                 shared: bool = False,
                 mode: int = DEFAULT_MODE,
                 retry_callback: Optional[Callable[[int, int], None]] = None):
        self._fh: Optional[BinaryIO] = None
        self._acquired = False

        if path is None:
            raise ValueError("Please specify path")
        if retries is None:
            retries = DEFAULT_RETRIES
        if retries < 0:
            raise ValueError(f"retries must be >= 0, got {retries}")

        self._path = os.fspath(path)
        self._retries = int(retries)
        self._shared = bool(shared)
        self._mode = DEFAULT_MODE if mode is None else mode
        self.retry_callback = retry_callback or (lambda tries, retries: None)

    @property
    def path(self) -> str:
        return self._path

    @property
    def retries(self) -> int:
        return self._retries

    @property
    def shared(self) -> bool:
        return self._shared

    @property
    def mode(self) -> int:
        return self._mode

    @property
    def acquired(self) -> bool:
        """True once this object has acquired the lock at least once"""
        return self._acquired

    @property
    def locked(self) -> bool:
        """True while the lock is held"""
        return self._fh is not None

    def handle(self) -> Optional[BinaryIO]:
        """Return the locked file object, or None when not held"""
        return self._fh

    def acquire(self) -> bool:
        """Acquire the lock, retrying every second while it is contended

        Returns False if this object already holds the lock. Raises OpenError
        if the file can't be opened and AcquireTimeoutError once the retries
        are used up.
        """
        if self._fh is not None:
            return False

        path = self._path
        flock_op = (fcntl.LOCK_SH if self._shared else fcntl.LOCK_EX) | fcntl.LOCK_NB
        tries = 0

        while True:
            fh = self._open()

            # stat before lock
            try:
                st1 = os.fstat(fh.fileno())
            except OSError:
                st1 = None
            if st1 is None or st1.st_nlink == 0:
                logger.debug(f"lock file '{path}' removed before locking, restarting")
                fh.close()
                continue

            try:
                fcntl.flock(fh, flock_op)
            except BlockingIOError:
                fh.close()
                tries += 1
                if tries > self._retries:
                    raise AcquireTimeoutError(path, tries, self._retries) from None
                logger.info(f"lock on '{path}' is held elsewhere, retry {tries}/{self._retries}")
                self.retry_callback(tries, self._retries)
                time.sleep(RETRY_INTERVAL)
                continue
            except OSError as e:
                fh.close()
                raise LockError(f"Can't lock '{path}': {e.strerror or e}") from e

            # stat after lock
            try:
                st2 = os.stat(path)
            except OSError as e:
                logger.debug(f"can't stat lock file '{path}' after locking ({e}), restarting")
                fh.close()
                continue

            if file_identity(st1) != file_identity(st2):
                logger.debug(f"lock file '{path}' was recreated while locking, restarting")
                fh.close()
                continue

            break

        self._fh = fh
        self._acquired = True
        logger.debug(f"acquired {'shared' if self._shared else 'exclusive'} lock on '{path}'")
        return True

    def _open(self) -> BinaryIO:
        try:
            fd = os.open(self._path, self._mode, 0o666)
        except OSError as e:
            raise OpenError(
                self._path, f"Can't open lock file '{self._path}': {e.strerror or e}"
            ) from e
        try:
            return os.fdopen(fd, file_mode_for(self._mode), buffering=0)
        except Exception:
            os.close(fd)
            raise

    def release(self) -> bool:
        """Release the lock, removing the lock file if it is still empty

        Returns False if the lock was not held. Never raises.
        """
        fh = self._fh
        if fh is None:
            return False

        if self._acquired:
            self._remove_if_empty(fh)

        try:
            fcntl.flock(fh, fcntl.LOCK_UN)
        except (OSError, ValueError) as e:
            # the handle may already be closed or invalid here
            logger.debug(f"unlocking '{self._path}' failed: {e}")

        self._fh = None
        try:
            fh.close()
        except OSError as e:
            logger.debug(f"closing '{self._path}' failed: {e}")
        return True

    unlock = release

    def _remove_if_empty(self, fh: BinaryIO):
        # runs while still holding the lock
        path = self._path
        try:
            st = os.stat(path)
            if st.st_size != 0 or file_identity(st) != file_identity(os.fstat(fh.fileno())):
                return
            if self._shared:
                # other shared holders may still rely on this inode
                try:
                    fcntl.flock(fh, fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    logger.debug(f"'{path}' still has shared holders, keeping it")
                    return
            os.unlink(path)
            logger.debug(f"removed empty lock file '{path}'")
        except (OSError, ValueError) as e:
            logger.debug(f"not removing '{path}': {e}")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.release()

    def __del__(self):
        if getattr(self, '_fh', None) is None:
            return
        warnings.warn(f"unreleased lock on '{self._path}'", ResourceWarning, source=self)
        self.release()

    def __repr__(self):
        state = 'locked' if self._fh is not None else 'unlocked'
        kind = 'shared' if self._shared else 'exclusive'
        return f"<RetryLock {self._path!r} {kind} {state}>"


def lock(path: Union[str, os.PathLike],
         retries: int = DEFAULT_RETRIES,
         shared: bool = False,
         mode: int = DEFAULT_MODE,
         retry_callback: Optional[Callable[[int, int], None]] = None) -> RetryLock:
    """Acquire a lock on ``path`` and return the held RetryLock"""
    held = RetryLock(path, retries=retries, shared=shared, mode=mode,
                     retry_callback=retry_callback)
    held.acquire()
    return held
