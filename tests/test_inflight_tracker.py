"""Tests for the in-flight tracker."""

import threading

from s3uploader.services.inflight_tracker import InFlightTracker


class TestInFlightTracker:
    """Tests for claiming and releasing file identities."""

    def test_first_claim_wins(self) -> None:
        """Test that only the first claim of an identity succeeds."""
        tracker = InFlightTracker()
        assert tracker.try_claim("/data/a.txt") is True
        assert tracker.try_claim("/data/a.txt") is False
        assert "/data/a.txt" in tracker
        assert len(tracker) == 1

    def test_release_allows_reclaim(self) -> None:
        """Test that a released identity can be claimed again."""
        tracker = InFlightTracker()
        tracker.try_claim("/data/a.txt")
        tracker.release("/data/a.txt")

        assert "/data/a.txt" not in tracker
        assert tracker.try_claim("/data/a.txt") is True

    def test_release_unknown_is_noop(self) -> None:
        """Test that releasing an identity nobody holds does nothing."""
        tracker = InFlightTracker()
        tracker.release("/data/missing.txt")
        assert len(tracker) == 0

    def test_snapshot_is_sorted_copy(self) -> None:
        """Test snapshot returns a sorted copy of held identities."""
        tracker = InFlightTracker()
        tracker.try_claim("/data/b.txt")
        tracker.try_claim("/data/a.txt")

        snapshot = tracker.snapshot()
        tracker.release("/data/a.txt")

        assert snapshot == ["/data/a.txt", "/data/b.txt"]
        assert tracker.snapshot() == ["/data/b.txt"]

    def test_concurrent_claims_single_winner(self) -> None:
        """Test that racing claims of one identity produce exactly one winner."""
        tracker = InFlightTracker()
        thread_count = 16
        barrier = threading.Barrier(thread_count)
        results: list[bool] = []
        results_lock = threading.Lock()

        def claim() -> None:
            barrier.wait()
            won = tracker.try_claim("/data/race.txt")
            with results_lock:
                results.append(won)

        threads = [threading.Thread(target=claim) for _ in range(thread_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == thread_count
        assert results.count(True) == 1
