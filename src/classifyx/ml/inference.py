"""Inference execution against a single ONNX session.

Architecture:
    caller -> InferenceExecutor.run_async -> ThreadPoolExecutor(1) -> run_sync -> ONNX session

All work for one session goes through one worker thread, so submissions run
strictly in FIFO order. ``run_sync`` additionally holds a lock around the
session call so a caller invoking it directly never overlaps the worker.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import StrEnum
from typing import TYPE_CHECKING, TypeVar

import numpy as np

from classifyx.errors import ClassifierClosedError, InferenceError, UnsupportedOutputShape

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from classifyx.ml.input_spec import ImageInputSpec

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OutputShape(StrEnum):
    VECTOR = "(N)"
    ROW = "(1,N)"
    NESTED_ROW = "(1,1,N)"


def classify_output_shape(shape: Sequence[int]) -> OutputShape:
    """Match an output array shape against the recognized score-vector shapes.

    Raises:
        UnsupportedOutputShape: For any shape other than ``(N)``, ``(1,N)``
            or ``(1,1,N)``.
    """
    dims = tuple(shape)
    if len(dims) == 1:
        return OutputShape.VECTOR
    if len(dims) == 2 and dims[0] == 1:
        return OutputShape.ROW
    if len(dims) == 3 and dims[0] == 1 and dims[1] == 1:
        return OutputShape.NESTED_ROW
    raise UnsupportedOutputShape(f"Unsupported ONNX output shape: {dims}")


def flatten_scores(output: object) -> NDArray[np.float32]:
    """Flatten a raw session output into a 1-D float32 score vector."""
    try:
        array = np.asarray(output, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise UnsupportedOutputShape(f"Unsupported ONNX output type: {type(output).__name__}") from exc

    kind = classify_output_shape(array.shape)
    if kind is OutputShape.ROW:
        array = array[0]
    elif kind is OutputShape.NESTED_ROW:
        array = array[0, 0]
    if array.size == 0:
        raise UnsupportedOutputShape("ONNX output contains no class scores")
    return array


class InferenceExecutor:
    """Owns a session and serializes every inference call on it."""

    def __init__(self, session: InferenceSession, spec: ImageInputSpec, name: str = "onnx-inference") -> None:
        self._session: InferenceSession | None = session
        self._spec = spec

        outputs = session.get_outputs()
        # With several outputs, the first one returned by the session is used.
        self._output_name: str | None = outputs[0].name if len(outputs) == 1 else None

        self._run_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._pending: int = 0
        self._counter_lock = threading.Lock()
        self._shutdown = False

    @property
    def output_name(self) -> str | None:
        return self._output_name

    @property
    def pending(self) -> int:
        """Number of submitted tasks that have not finished yet."""
        with self._counter_lock:
            return self._pending

    def run_sync(self, tensor: NDArray[np.float32]) -> tuple[NDArray[np.float32], float]:
        """Run the model once on a flat tensor buffer.

        Returns:
            The flattened score vector and the session latency in milliseconds.

        Raises:
            InferenceError: If ONNX Runtime fails while executing the model.
            UnsupportedOutputShape: If the output cannot be flattened.
        """
        shape = self._spec.tensor_shape
        try:
            batch = np.asarray(tensor, dtype=np.float32).reshape(shape)
        except ValueError as exc:
            raise InferenceError(f"Tensor of size {np.size(tensor)} does not fit input shape {shape}") from exc

        feeds = {self._spec.input_name: batch}
        output_names = [self._output_name] if self._output_name is not None else None

        with self._run_lock:
            if self._session is None:
                raise ClassifierClosedError("Inference session has been released")
            started = time.perf_counter()
            try:
                results = self._session.run(output_names, feeds)
            except Exception as exc:  # onnxruntime raises its own pybind exception types
                raise InferenceError(f"ONNX inference failed: {exc}") from exc
            latency_ms = (time.perf_counter() - started) * 1000.0

        if not results:
            raise UnsupportedOutputShape("ONNX session returned no outputs")
        return flatten_scores(results[0]), latency_ms

    def run_async(self, func: Callable[..., T], *args: object) -> Future[T]:
        """Queue ``func(*args)`` on the dedicated worker thread.

        Raises:
            ClassifierClosedError: If the executor has been shut down.
        """
        with self._counter_lock:
            if self._shutdown:
                raise ClassifierClosedError("Inference executor is shut down")
            self._pending += 1
            future = self._executor.submit(func, *args)
        future.add_done_callback(self._task_done)
        return future

    def shutdown(self) -> None:
        """Stop accepting work, let queued tasks finish, then drop the session."""
        with self._counter_lock:
            if self._shutdown:
                return
            self._shutdown = True
        self._executor.shutdown(wait=True)
        with self._run_lock:
            self._session = None

    def _task_done(self, _future: Future[object]) -> None:
        with self._counter_lock:
            self._pending -= 1
