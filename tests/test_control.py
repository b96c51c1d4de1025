import threading
import time

import pytest

from core.control import RunControl, StopRequested, stoppable_sleep


def test_checkpoint_passes_when_running():
    RunControl().check_should_stop()


def test_stop_raises_at_checkpoint():
    control = RunControl("t")
    control.request_stop()
    with pytest.raises(StopRequested):
        control.check_should_stop()
    control.reset()
    control.check_should_stop()


def test_pause_blocks_until_resume():
    control = RunControl("t")
    control.request_pause()
    passed = threading.Event()

    def worker():
        control.check_should_stop()
        passed.set()

    thread = threading.Thread(target=worker)
    thread.start()
    assert not passed.wait(0.3)
    control.request_resume()
    assert passed.wait(2)
    thread.join(2)


def test_stop_releases_a_paused_checkpoint():
    control = RunControl("t")
    control.request_pause()
    outcome = []

    def worker():
        try:
            control.check_should_stop()
        except StopRequested:
            outcome.append("stopped")

    thread = threading.Thread(target=worker)
    thread.start()
    time.sleep(0.1)
    control.request_stop()
    thread.join(2)
    assert outcome == ["stopped"]


def test_stoppable_sleep_is_interrupted():
    control = RunControl("t")
    threading.Timer(0.1, control.request_stop).start()
    started = time.time()
    with pytest.raises(StopRequested):
        stoppable_sleep(5, control, check_interval_s=0.02)
    assert time.time() - started < 2


def test_stoppable_sleep_without_control():
    started = time.time()
    stoppable_sleep(0.05)
    stoppable_sleep(-1)
    assert time.time() - started >= 0.05
