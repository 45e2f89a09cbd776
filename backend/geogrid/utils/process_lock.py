# backend/geogrid/utils/process_lock.py
"""
Host-level process lock.

The lock file is created exclusively and always removed on exit from the
context. A lock left behind by a killed process is not recovered
automatically; an operator removes it.
"""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from ..exceptions import ProcessLockError
from .time_utils import utc_now


@contextmanager
def acquire_process_lock(path: Union[str, Path]) -> Iterator[Path]:
    """
    Hold an exclusive lock file for the duration of the block.

    Raises:
        ProcessLockError: If the lock file already exists
    """
    lock_path = Path(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError as e:
        raise ProcessLockError(
            f"Lock file {lock_path} already exists", details={"path": str(lock_path)}
        ) from e

    try:
        with os.fdopen(fd, "w") as handle:
            handle.write(f"{os.getpid()}\n{utc_now().isoformat()}\n")
        yield lock_path
    finally:
        lock_path.unlink(missing_ok=True)
