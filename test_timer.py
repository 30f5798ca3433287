"""Countdown timer: visible-time accounting and single expiry."""
from conftest import FakeClock
from assessment.timer import CountdownTimer, format_clock


def test_hidden_time_is_not_counted():
    clock = FakeClock()
    timer = CountdownTimer(60, clock=clock)
    timer.start()
    clock.advance(10)
    timer.tick()
    timer.set_visible(False)
    clock.advance(30)
    timer.tick()
    timer.set_visible(True)
    timer.tick()
    assert timer.elapsed == 10
    assert timer.remaining == 50
    assert not timer.expired


def test_expiry_fires_once():
    clock = FakeClock()
    fired = []
    timer = CountdownTimer(5, clock=clock, on_expire=lambda: fired.append(clock()))
    timer.start()
    clock.advance(7)
    assert timer.tick()
    clock.advance(3)
    timer.tick()
    assert fired == [1007.0]
    assert timer.remaining == 0
    assert not timer.running


def test_sparse_ticks_still_count_full_visible_time():
    clock = FakeClock()
    timer = CountdownTimer(60, clock=clock)
    timer.start()
    clock.advance(42.5)
    timer.tick()
    assert timer.remaining == 18


def test_untimed_never_expires():
    clock = FakeClock()
    timer = CountdownTimer(None, clock=clock)
    timer.start()
    clock.advance(10_000)
    assert not timer.tick()
    assert timer.remaining is None
    assert timer.elapsed == 10_000


def test_resume_from_elapsed():
    clock = FakeClock()
    timer = CountdownTimer(60, clock=clock, elapsed=50)
    timer.start()
    clock.advance(10)
    assert timer.tick()


def test_format_clock():
    assert format_clock(None) == "--:--"
    assert format_clock(65) == "1:05"
    assert format_clock(3725) == "1:02:05"
    assert format_clock(-3) == "0:00"
