"""Tests for fire-time snapshots, stale timer events and callback failures."""
import pytest

from ticktock import ManualBackend, Tick


class LeakyBackend(ManualBackend):
    """Cancel is best effort on real platforms; here it never works."""

    def cancel(self, handle):
        pass


class TestSnapshot:
    """Callbacks present at fire time run exactly once."""

    def test_reschedule_same_name_from_callback(self):
        backend = ManualBackend()
        tick = Tick(backend=backend)
        fired = []

        def first(ctx):
            fired.append(("first", backend.now))
            ctx.set_timeout("a", lambda c: fired.append(("second", backend.now)), 10)

        tick.set_timeout("a", first, 10)

        backend.advance(10)
        assert fired == [("first", 10)]
        assert tick.active("a")

        backend.advance(10)
        assert fired == [("first", 10), ("second", 20)]
        assert not tick.active("a")

    def test_interval_additions_join_next_tick(self):
        backend = ManualBackend()
        tick = Tick(backend=backend)
        fired = []

        def late(ctx):
            fired.append(("late", backend.now))

        def first(ctx):
            fired.append(("first", backend.now))
            if backend.now == 10:
                ctx.set_interval("r", late, 10)

        tick.set_interval("r", first, 10)
        backend.advance(20)
        assert fired == [("first", 10), ("first", 20), ("late", 20)]

    def test_clearing_inside_one_shot_does_not_skip_siblings(self):
        backend = ManualBackend()
        tick = Tick(backend=backend)
        fired = []
        tick.set_timeout("a", lambda ctx: (fired.append(1), ctx.clear("a")), 10)
        tick.set_timeout("a", lambda ctx: fired.append(2), 10)

        backend.advance(10)
        assert fired == [1, 2]

    def test_clearing_interval_from_callback_stops_it(self):
        backend = ManualBackend()
        tick = Tick(backend=backend)
        fired = []

        def once_then_stop(ctx):
            fired.append(backend.now)
            ctx.clear("r")

        tick.set_interval("r", once_then_stop, 10)
        backend.advance(100)
        assert fired == [10]
        assert backend.pending() == 0

    def test_entry_removed_before_callbacks_run(self):
        backend = ManualBackend()
        tick = Tick(backend=backend)
        seen = []
        tick.set_timeout("a", lambda ctx: seen.append(ctx.active("a")), 10)

        backend.advance(10)
        assert seen == [False]

    def test_interval_entry_stays_while_running(self):
        backend = ManualBackend()
        tick = Tick(backend=backend)
        seen = []
        tick.set_interval("r", lambda ctx: seen.append(ctx.active("r")), 10)

        backend.advance(10)
        assert seen == [True]


class TestStaleEvents:
    """A fire event that outlives its timer is ignored."""

    def test_clear_wins_over_queued_fire(self):
        backend = LeakyBackend()
        tick = Tick(backend=backend)
        fired = []
        tick.set_timeout("a", lambda ctx: fired.append(True), 10)

        tick.clear("a")
        backend.advance(100)
        assert fired == []

    def test_adjusted_timer_ignores_old_fire(self):
        backend = LeakyBackend()
        tick = Tick(backend=backend)
        fired = []
        tick.set_timeout("a", lambda ctx: fired.append(backend.now), 10)

        tick.adjust("a", 50)
        backend.advance(10)
        assert fired == []
        assert tick.active("a")

        backend.advance(40)
        assert fired == [50]

    def test_recreated_name_ignores_old_fire(self):
        backend = LeakyBackend()
        tick = Tick(backend=backend)
        fired = []
        tick.set_timeout("a", lambda ctx: fired.append(("old", backend.now)), 10)
        tick.clear("a")
        tick.set_timeout("a", lambda ctx: fired.append(("new", backend.now)), 50)

        backend.advance(10)
        assert fired == []

        backend.advance(40)
        assert fired == [("new", 50)]

    def test_fire_after_end_ignored(self):
        backend = LeakyBackend()
        tick = Tick(backend=backend)
        fired = []
        tick.set_interval("r", lambda ctx: fired.append(True), 10)

        tick.end()
        backend.advance(100)
        assert fired == []


class TestCallbackFailures:
    """Failures surface to the host after the rest of the snapshot runs."""

    def test_single_failure_propagates(self):
        backend = ManualBackend()
        tick = Tick(backend=backend)
        fired = []

        def boom(ctx):
            raise ValueError("boom")

        tick.set_timeout("a", boom, 10)
        tick.set_timeout("a", lambda ctx: fired.append("after"), 10)

        with pytest.raises(ValueError, match="boom"):
            backend.advance(10)
        assert fired == ["after"]
        assert not tick.active("a")

    def test_multiple_failures_grouped(self):
        backend = ManualBackend()
        tick = Tick(backend=backend)

        def boom(ctx):
            raise ValueError("boom")

        def bang(ctx):
            raise KeyError("bang")

        tick.set_timeout("a", boom, 10)
        tick.set_timeout("a", bang, 10)

        with pytest.raises(ExceptionGroup) as excinfo:
            backend.advance(10)
        assert len(excinfo.value.exceptions) == 2
        assert isinstance(excinfo.value.exceptions[0], ValueError)
        assert isinstance(excinfo.value.exceptions[1], KeyError)

    def test_failing_interval_keeps_running(self):
        backend = ManualBackend()
        tick = Tick(backend=backend)
        calls = []

        def flaky(ctx):
            calls.append(backend.now)
            raise RuntimeError("flaky")

        tick.set_interval("r", flaky, 10)
        with pytest.raises(RuntimeError):
            backend.advance(10)
        with pytest.raises(RuntimeError):
            backend.advance(10)
        assert calls == [10, 20]
        assert tick.active("r")
