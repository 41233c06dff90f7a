"""Advisory file locks with automatic retry and cleanup"""

from .errors import AcquireTimeoutError, ConfigError, FlockRetryError, LockError, OpenError
from .lock import RetryLock, lock

__version__ = '0.1.0'

__all__ = [
    'AcquireTimeoutError',
    'ConfigError',
    'FlockRetryError',
    'LockError',
    'OpenError',
    'RetryLock',
    'lock',
]
