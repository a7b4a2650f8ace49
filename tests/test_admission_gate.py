"""Tests for the admission gate."""

import threading

import pytest

from s3uploader.services.admission_gate import AdmissionGate


class TestAdmissionGate:
    """Tests for permit accounting."""

    def test_rejects_invalid_bound(self) -> None:
        """Test that a bound below one is rejected."""
        with pytest.raises(ValueError):
            AdmissionGate(0)

    def test_acquire_up_to_bound(self) -> None:
        """Test that permits run out at the bound."""
        gate = AdmissionGate(2)
        assert gate.acquire() is True
        assert gate.acquire() is True
        assert gate.in_use == 2
        assert gate.acquire(timeout=0.01) is False

    def test_release_frees_permit(self) -> None:
        """Test that a released permit can be taken again."""
        gate = AdmissionGate(1)
        gate.acquire()
        gate.release()

        assert gate.in_use == 0
        assert gate.acquire(timeout=0.01) is True

    def test_over_release_raises(self) -> None:
        """Test that returning more permits than taken is an error."""
        gate = AdmissionGate(1)
        with pytest.raises(ValueError, match="released too many times"):
            gate.release()

    def test_release_wakes_blocked_acquire(self) -> None:
        """Test that a blocked acquire returns once a permit is released."""
        gate = AdmissionGate(1)
        gate.acquire()
        result: list[bool] = []

        waiter = threading.Thread(target=lambda: result.append(gate.acquire(timeout=5)))
        waiter.start()
        gate.release()
        waiter.join(timeout=5)

        assert result == [True]
        assert gate.in_use == 1

    def test_close_wakes_blocked_acquire(self) -> None:
        """Test that close() makes a blocked acquire return False."""
        gate = AdmissionGate(1)
        gate.acquire()
        result: list[bool] = []

        waiter = threading.Thread(target=lambda: result.append(gate.acquire()))
        waiter.start()
        gate.close()
        waiter.join(timeout=5)

        assert not waiter.is_alive()
        assert result == [False]
        assert gate.closed is True

    def test_acquire_after_close_fails(self) -> None:
        """Test that a closed gate hands out no permits."""
        gate = AdmissionGate(3)
        gate.close()
        assert gate.acquire() is False
        assert gate.in_use == 0
