import threading
import time
from concurrent.futures import CancelledError

import pytest

from chant.common.fanout import fan_out


def test_results_keep_input_order():
    def slow_echo(n):
        time.sleep(0.01 * (5 - n))
        return n * 10

    assert fan_out(slow_echo, range(5), max_workers=5) == [0, 10, 20, 30, 40]


def test_empty_input():
    assert fan_out(lambda x: x, []) == []


def test_progress_callback_per_item():
    ticks = []
    fan_out(lambda x: x, [1, 2, 3], on_progress=lambda: ticks.append(1))
    assert len(ticks) == 3


def test_first_failure_is_raised():
    def maybe_fail(n):
        if n == 2:
            raise KeyError("boom")
        return n

    with pytest.raises(KeyError):
        fan_out(maybe_fail, [1, 2, 3])


def test_cancelled_before_start_runs_nothing():
    calls = []
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(CancelledError):
        fan_out(calls.append, [1, 2, 3], cancel_event=cancel)
    assert calls == []


def test_cancel_mid_batch_skips_unstarted_jobs():
    cancel = threading.Event()
    started = []

    def job(n):
        started.append(n)
        cancel.set()
        return n

    with pytest.raises(CancelledError):
        fan_out(job, range(10), max_workers=1, cancel_event=cancel)
    assert started == [0]
