#!/usr/bin/env python3
"""
Unit tests for the host-level process lock.
"""

import pytest

from geogrid.exceptions import ProcessLockError
from geogrid.utils.process_lock import acquire_process_lock


@pytest.mark.unit
class TestProcessLock:
    """Exclusive lock file handling."""

    def test_lock_file_exists_inside_block(self, tmp_path):
        lock = tmp_path / "locks" / "geogrid.lock"

        with acquire_process_lock(lock) as held:
            assert held == lock
            assert lock.exists()
            pid_line = lock.read_text().splitlines()[0]
            assert pid_line.isdigit()

        assert not lock.exists()

    def test_lock_removed_when_block_raises(self, tmp_path):
        lock = tmp_path / "geogrid.lock"

        with pytest.raises(RuntimeError):
            with acquire_process_lock(lock):
                raise RuntimeError("engine crashed")

        assert not lock.exists()

    def test_second_holder_is_rejected(self, tmp_path):
        lock = tmp_path / "geogrid.lock"

        with acquire_process_lock(lock):
            with pytest.raises(ProcessLockError):
                with acquire_process_lock(lock):
                    pass
            assert lock.exists()

    def test_leftover_lock_is_not_removed_by_rejected_holder(self, tmp_path):
        lock = tmp_path / "geogrid.lock"
        lock.write_text("12345\n")

        with pytest.raises(ProcessLockError):
            with acquire_process_lock(lock):
                pass

        assert lock.read_text() == "12345\n"
