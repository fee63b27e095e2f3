"""
Unit tests for the reconnect timer.
"""

from signalclient.core.retry import RetryTimer

from conftest import FakeScheduler


class TestRetryTimer:
    """Tests for RetryTimer against a fake scheduler."""

    def test_arm_and_fire(self):
        scheduler = FakeScheduler()
        fired = []
        timer = RetryTimer(2.0, scheduler)

        assert timer.arm(lambda: fired.append(1)) is True
        assert timer.armed
        assert scheduler.handles[0].delay == 2.0

        scheduler.fire_all()

        assert fired == [1]
        assert not timer.armed

    def test_arm_refused_while_armed(self):
        """Test that a second arm() does not stack another firing."""
        scheduler = FakeScheduler()
        timer = RetryTimer(2.0, scheduler)

        assert timer.arm(lambda: None) is True
        assert timer.arm(lambda: None) is False
        assert len(scheduler.handles) == 1

    def test_cancel(self):
        scheduler = FakeScheduler()
        fired = []
        timer = RetryTimer(2.0, scheduler)
        timer.arm(lambda: fired.append(1))

        timer.cancel()

        assert not timer.armed
        assert scheduler.pending == []

    def test_stale_firing_dropped(self):
        """Test that a handle firing after cancel and re-arm does nothing."""
        scheduler = FakeScheduler()
        fired = []
        timer = RetryTimer(2.0, scheduler)
        timer.arm(lambda: fired.append("old"))
        old = scheduler.handles[0]
        timer.cancel()
        timer.arm(lambda: fired.append("new"))

        scheduler.fire(old)
        assert fired == []
        assert timer.armed

        scheduler.fire(scheduler.handles[1])
        assert fired == ["new"]
