"""Tests for the request tracker."""

from zhidao_client.notifications import RequestTracker


class TestRequestTracker:
    """Tests for RequestTracker."""

    def test_track_and_complete(self, tracker):
        """Test completing a tracked request notifies handlers."""
        completed = []
        tracker.add_handler(completed.append)

        request_id = tracker.track("What is RLHF?")
        result = tracker.complete(request_id)

        assert result.query == "What is RLHF?"
        assert result.duration_seconds >= 0
        assert completed == [result]
        assert tracker.active_requests() == []

    def test_complete_unknown_id(self, tracker):
        """Test unknown ids are ignored."""
        completed = []
        tracker.add_handler(completed.append)

        assert tracker.complete("missing") is None
        assert completed == []

    def test_complete_twice(self, tracker):
        """Test a request is reported only once."""
        completed = []
        tracker.add_handler(completed.append)
        request_id = tracker.track("q")

        tracker.complete(request_id)
        tracker.complete(request_id)

        assert len(completed) == 1

    def test_stop_tracking_skips_handlers(self, tracker):
        """Test stopped requests are forgotten silently."""
        completed = []
        tracker.add_handler(completed.append)
        request_id = tracker.track("q")

        tracker.stop_tracking(request_id)

        assert tracker.complete(request_id) is None
        assert completed == []

    def test_failing_handler_is_isolated(self):
        """Test a raising handler does not stop the others."""
        completed = []

        def broken(request):
            raise RuntimeError("notifier unavailable")

        tracker = RequestTracker([broken, completed.append])
        tracker.complete(tracker.track("q"))

        assert len(completed) == 1

    def test_active_requests(self, tracker):
        """Test active requests list tracked queries."""
        tracker.track("first")
        tracker.track("second")

        assert sorted(r.query for r in tracker.active_requests()) == ["first", "second"]
