"""Tests for the inference executor and output-shape handling."""

from __future__ import annotations

import threading
import time

import numpy as np
import pytest
from conftest import FakeNode, FakeSession

from classifyx.errors import ClassifierClosedError, InferenceError, UnsupportedOutputShape
from classifyx.ml.inference import InferenceExecutor, OutputShape, classify_output_shape, flatten_scores
from classifyx.ml.input_spec import ImageInputSpec, Layout

PLANAR = ImageInputSpec("input", Layout.PLANAR, width=4, height=2)
INTERLEAVED = ImageInputSpec("input", Layout.INTERLEAVED, width=4, height=2)


def _tensor(spec: ImageInputSpec) -> np.ndarray:
    return np.zeros(3 * spec.width * spec.height, dtype=np.float32)


# ---------------------------------------------------------------------------
# Output shapes
# ---------------------------------------------------------------------------


class TestOutputShape:
    @pytest.mark.parametrize(
        ("shape", "expected"),
        [
            ((1000,), OutputShape.VECTOR),
            ((1, 1000), OutputShape.ROW),
            ((1, 1, 1000), OutputShape.NESTED_ROW),
        ],
    )
    def test_recognized(self, shape: tuple[int, ...], expected: OutputShape) -> None:
        assert classify_output_shape(shape) is expected

    @pytest.mark.parametrize("shape", [(), (2, 10), (1, 2, 10), (1, 1, 1, 10)])
    def test_unrecognized(self, shape: tuple[int, ...]) -> None:
        with pytest.raises(UnsupportedOutputShape):
            classify_output_shape(shape)

    @pytest.mark.parametrize("output", [[1.0, 2.0, 3.0], [[1.0, 2.0, 3.0]], [[[1.0, 2.0, 3.0]]]])
    def test_flatten(self, output: object) -> None:
        np.testing.assert_array_equal(flatten_scores(np.asarray(output)), [1.0, 2.0, 3.0])

    def test_flatten_empty(self) -> None:
        with pytest.raises(UnsupportedOutputShape, match="no class scores"):
            flatten_scores(np.zeros((1, 0)))

    def test_flatten_non_numeric(self) -> None:
        with pytest.raises(UnsupportedOutputShape, match="output type"):
            flatten_scores([{"cat": 0.5}])


# ---------------------------------------------------------------------------
# run_sync
# ---------------------------------------------------------------------------


class TestRunSync:
    def test_planar_feed_shape(self, fake_session: FakeSession) -> None:
        executor = InferenceExecutor(fake_session, PLANAR)  # type: ignore[arg-type]
        scores, latency_ms = executor.run_sync(_tensor(PLANAR))
        output_names, feeds = fake_session.calls[0]
        assert output_names == ["logits"]
        assert feeds["input"].shape == (1, 3, 2, 4)
        assert feeds["input"].dtype == np.float32
        assert scores.shape == (10,)
        assert latency_ms >= 0.0
        executor.shutdown()

    def test_interleaved_feed_shape(self, fake_session: FakeSession) -> None:
        executor = InferenceExecutor(fake_session, INTERLEAVED)  # type: ignore[arg-type]
        executor.run_sync(_tensor(INTERLEAVED))
        assert fake_session.calls[0][1]["input"].shape == (1, 2, 4, 3)
        executor.shutdown()

    def test_multiple_outputs_take_first(self) -> None:
        session = FakeSession(outputs=[FakeNode("scores", [1, 10]), FakeNode("features", [1, 512])])
        executor = InferenceExecutor(session, PLANAR)  # type: ignore[arg-type]
        assert executor.output_name is None
        executor.run_sync(_tensor(PLANAR))
        assert session.calls[0][0] is None
        executor.shutdown()

    def test_engine_error_wrapped(self) -> None:
        def boom(_batch: np.ndarray) -> object:
            raise RuntimeError("kernel exploded")

        executor = InferenceExecutor(FakeSession(output_fn=boom), PLANAR)  # type: ignore[arg-type]
        with pytest.raises(InferenceError, match="kernel exploded"):
            executor.run_sync(_tensor(PLANAR))
        executor.shutdown()

    def test_unsupported_output(self) -> None:
        session = FakeSession(output_fn=lambda _b: np.zeros((2, 5), dtype=np.float32))
        executor = InferenceExecutor(session, PLANAR)  # type: ignore[arg-type]
        with pytest.raises(UnsupportedOutputShape):
            executor.run_sync(_tensor(PLANAR))
        executor.shutdown()

    def test_wrong_tensor_size(self, fake_session: FakeSession) -> None:
        executor = InferenceExecutor(fake_session, PLANAR)  # type: ignore[arg-type]
        with pytest.raises(InferenceError, match="does not fit"):
            executor.run_sync(np.zeros(5, dtype=np.float32))
        assert fake_session.calls == []
        executor.shutdown()

    def test_session_released_after_shutdown(self, fake_session: FakeSession) -> None:
        executor = InferenceExecutor(fake_session, PLANAR)  # type: ignore[arg-type]
        executor.shutdown()
        with pytest.raises(ClassifierClosedError):
            executor.run_sync(_tensor(PLANAR))


# ---------------------------------------------------------------------------
# run_async
# ---------------------------------------------------------------------------


class TestRunAsync:
    def test_fifo_order(self, fake_session: FakeSession) -> None:
        executor = InferenceExecutor(fake_session, PLANAR)  # type: ignore[arg-type]
        order: list[int] = []
        lock = threading.Lock()

        def task(i: int) -> int:
            time.sleep(0.001 * (5 - i % 5))
            with lock:
                order.append(i)
            return i

        futures = [executor.run_async(task, i) for i in range(20)]
        assert [f.result(timeout=5) for f in futures] == list(range(20))
        assert order == list(range(20))
        executor.shutdown()

    def test_single_worker_thread(self, fake_session: FakeSession) -> None:
        executor = InferenceExecutor(fake_session, PLANAR)  # type: ignore[arg-type]
        futures = [executor.run_async(lambda: threading.current_thread().name) for _ in range(5)]
        names = {f.result(timeout=5) for f in futures}
        assert len(names) == 1
        executor.shutdown()

    def test_failure_isolated_to_its_future(self, fake_session: FakeSession) -> None:
        executor = InferenceExecutor(fake_session, PLANAR)  # type: ignore[arg-type]

        def fail() -> None:
            raise InferenceError("bad call")

        bad = executor.run_async(fail)
        good = executor.run_async(executor.run_sync, _tensor(PLANAR))
        with pytest.raises(InferenceError, match="bad call"):
            bad.result(timeout=5)
        scores, _ = good.result(timeout=5)
        assert scores.shape == (10,)
        executor.shutdown()

    def test_sync_and_async_never_overlap(self) -> None:
        def slow(_batch: np.ndarray) -> np.ndarray:
            time.sleep(0.005)
            return np.ones((1, 3), dtype=np.float32)

        session = FakeSession(output_fn=slow)
        executor = InferenceExecutor(session, PLANAR)  # type: ignore[arg-type]
        futures = [executor.run_async(executor.run_sync, _tensor(PLANAR)) for _ in range(5)]
        for _ in range(5):
            executor.run_sync(_tensor(PLANAR))
        for f in futures:
            f.result(timeout=5)
        assert session.max_concurrent == 1
        executor.shutdown()

    def test_pending_count(self, fake_session: FakeSession) -> None:
        executor = InferenceExecutor(fake_session, PLANAR)  # type: ignore[arg-type]
        gate = threading.Event()
        first = executor.run_async(gate.wait, 5)
        second = executor.run_async(lambda: None)
        assert executor.pending == 2
        gate.set()
        first.result(timeout=5)
        second.result(timeout=5)
        executor.shutdown()
        assert executor.pending == 0

    def test_shutdown_drains_queue_and_rejects_new_work(self, fake_session: FakeSession) -> None:
        executor = InferenceExecutor(fake_session, PLANAR)  # type: ignore[arg-type]
        queued = [executor.run_async(time.sleep, 0.002) for _ in range(3)]
        executor.shutdown()
        assert all(f.done() and f.exception() is None for f in queued)
        with pytest.raises(ClassifierClosedError):
            executor.run_async(lambda: None)
        executor.shutdown()
