"""
Tests for progress events, throttling and cancellation.
"""
import threading

import pytest

from chemspace.errors import ReductionCancelledError
from chemspace.progress import CancellationToken, ProgressEvent, ProgressThrottle


class FakeClock:
    def __init__(self, times):
        self._times = iter(times)

    def __call__(self):
        return next(self._times)


class TestProgressEvent:
    def test_fraction(self):
        assert ProgressEvent("tsne", 5, 10).fraction == 0.5
        assert ProgressEvent("pca", 0, 0).fraction == 1.0

    def test_is_final(self):
        assert ProgressEvent("umap", 200, 200).is_final
        assert not ProgressEvent("umap", 199, 200).is_final


class TestProgressThrottle:
    def test_forwards_every_event_by_default(self):
        received = []
        throttle = ProgressThrottle(received.append)
        for current in range(1, 4):
            throttle(ProgressEvent("umap", current, 3))
        assert [event.current for event in received] == [1, 2, 3]

    def test_interval_drops_intermediate_events(self):
        received = []
        throttle = ProgressThrottle(
            received.append, min_interval=1.0, clock=FakeClock([0.0, 0.5, 1.0, 1.2, 1.3])
        )
        for current in range(1, 6):
            throttle(ProgressEvent("tsne", current, 5))
        assert [event.current for event in received] == [1, 3, 5]

    def test_final_event_always_forwarded(self):
        received = []
        throttle = ProgressThrottle(
            received.append, min_interval=100.0, clock=FakeClock([0.0, 0.1])
        )
        throttle(ProgressEvent("tsne", 1, 2))
        throttle(ProgressEvent("tsne", 2, 2))
        assert [event.current for event in received] == [1, 2]

    def test_regressions_dropped(self):
        received = []
        throttle = ProgressThrottle(received.append)
        throttle(ProgressEvent("tsne", 3, 5))
        throttle(ProgressEvent("tsne", 2, 5))
        assert [event.current for event in received] == [3]

    def test_without_callback(self):
        ProgressThrottle(None)(ProgressEvent("pca", 1, 1))


class TestCancellationToken:
    def test_not_cancelled_initially(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled("tsne", 0)

    def test_cancel_from_another_thread(self):
        token = CancellationToken()
        worker = threading.Thread(target=token.cancel)
        worker.start()
        worker.join()
        assert token.cancelled

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ReductionCancelledError) as excinfo:
            token.raise_if_cancelled("umap", 4)
        assert excinfo.value.stage == "umap"
        assert excinfo.value.step == 4
