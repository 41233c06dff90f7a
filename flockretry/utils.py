"""Utility functions for flock-retry"""

import os
from typing import Tuple, Union

from .errors import ConfigError

DEFAULT_MODE = os.O_CREAT | os.O_RDWR


def parse_mode(value: Union[int, str, None]) -> int:
    """Turn open flags like 'O_CREAT|O_RDWR' into an int for os.open"""
    if value is None:
        return DEFAULT_MODE
    if isinstance(value, bool):
        raise ConfigError(f"Invalid open mode: {value!r}")
    if isinstance(value, int):
        return value

    flags = 0
    for name in str(value).split('|'):
        name = name.strip().upper()
        if not name:
            continue
        if name.isdigit():
            flags |= int(name)
            continue
        if not name.startswith('O_'):
            name = 'O_' + name
        flag = getattr(os, name, None)
        if not isinstance(flag, int):
            raise ConfigError(f"Unknown open flag: {name}")
        flags |= flag
    return flags


def file_mode_for(flags: int) -> str:
    """File object mode matching the access mode of open flags"""
    append = bool(flags & os.O_APPEND)
    access = flags & (os.O_RDONLY | os.O_WRONLY | os.O_RDWR)
    if access == os.O_WRONLY:
        return 'ab' if append else 'wb'
    if access == os.O_RDWR:
        return 'a+b' if append else 'r+b'
    return 'rb'


def file_identity(st: os.stat_result) -> Tuple[int, int]:
    return st.st_dev, st.st_ino
