"""Errors raised by flock-retry"""


class FlockRetryError(Exception):
    """Base flock-retry exception"""


class OpenError(FlockRetryError):
    """Raised when the lock file cannot be opened or created"""

    def __init__(self, path: str, message: str):
        super().__init__(message)
        self.path = path


class AcquireTimeoutError(FlockRetryError):
    """Raised when the lock is still held elsewhere after all retries"""

    def __init__(self, path: str, tries: int, retries: int):
        super().__init__(
            f"Can't acquire lock on '{path}' after {retries} seconds ({tries} attempts)"
        )
        self.path = path
        self.tries = tries
        self.retries = retries


class LockError(FlockRetryError):
    """Raised when the lock primitive itself fails (e.g. no flock support)"""


class ConfigError(FlockRetryError):
    """Raised when a configuration value is invalid"""
