"""Tracking of files currently owned by the upload pipeline."""

import threading


class InFlightTracker:
    """Thread-safe set of file identities that are queued or uploading.

    The driver thread claims an identity before submitting its upload; the
    completion handler on a worker thread releases it. While an identity is
    held, rescans of the same folder skip the file.
    """

    def __init__(self) -> None:
        self._identities: set[str] = set()
        self._lock = threading.Lock()

    def try_claim(self, identity: str) -> bool:
        """Claim an identity if nobody holds it.

        Returns:
            True only for the caller that inserted the identity
        """
        with self._lock:
            if identity in self._identities:
                return False
            self._identities.add(identity)
            return True

    def release(self, identity: str) -> None:
        """Drop an identity so a later scan may claim it again."""
        with self._lock:
            self._identities.discard(identity)

    def snapshot(self) -> list[str]:
        """Get the identities currently held, sorted."""
        with self._lock:
            return sorted(self._identities)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._identities

    def __len__(self) -> int:
        with self._lock:
            return len(self._identities)
