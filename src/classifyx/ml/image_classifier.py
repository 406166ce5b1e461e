"""Single-image ONNX classifier.

``Classifier`` ties the pipeline together: it loads the model once, resolves
and caches the input spec, picks a normalization profile, and then
classifies any number of images until it is closed.

Usage::

    with Classifier.open("resnet50.onnx", "imagenet_labels.txt") as clf:
        result = clf.classify(image, top_k=3)
        future = clf.classify_async(image, top_k=3)
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from classifyx.errors import ClassifierClosedError, ModelLoadError
from classifyx.ml.inference import InferenceExecutor
from classifyx.ml.input_spec import Layout, resolve_input_spec
from classifyx.ml.labels import load_labels
from classifyx.ml.normalization import profile_name, select_profile
from classifyx.ml.preprocessing import preprocess
from classifyx.ml.ranking import rank
from classifyx.ml.runtime import RuntimeContext

if TYPE_CHECKING:
    from collections.abc import Callable
    from concurrent.futures import Future
    from pathlib import Path
    from types import TracebackType

    from onnxruntime import InferenceSession

    from classifyx.ml.input_spec import ImageInputSpec
    from classifyx.ml.normalization import NormalizationProfile
    from classifyx.ml.preprocessing import ImageLike
    from classifyx.ml.ranking import RankedResult

logger = logging.getLogger(__name__)


class Classifier:
    """Loads one ONNX model and classifies images against it."""

    def __init__(
        self,
        session: InferenceSession,
        model_name: str,
        context: RuntimeContext,
        labels: list[str] | None = None,
        profile: NormalizationProfile | None = None,
    ) -> None:
        self._model_name = model_name
        self._context = context
        self._labels = labels

        self._spec = resolve_input_spec(session)
        self._profile = profile if profile is not None else select_profile(model_name)
        self._executor = InferenceExecutor(session, self._spec)

        self._close_lock = threading.Lock()
        self._closed = False

        for node in session.get_inputs():
            logger.info("ONNX input: %s -> %s %s", node.name, node.type, node.shape)
        for node in session.get_outputs():
            logger.info("ONNX output: %s -> %s %s", node.name, node.type, node.shape)
        logger.info(
            "ONNX model loaded: %s (output=%s, normalization=%s)",
            self._spec,
            self._executor.output_name or "<first>",
            profile_name(self._profile),
        )

    @classmethod
    def open(
        cls,
        model_path: str | Path,
        labels_path: str | Path | None = None,
        *,
        context: RuntimeContext | None = None,
        profile: NormalizationProfile | None = None,
    ) -> Classifier:
        """Load a model and build a classifier for it.

        Args:
            model_path: Path to the ONNX model file.
            labels_path: Optional labels file; missing or unreadable files fall
                back to ``class_<index>`` labels.
            context: Shared runtime context. A private one is created if omitted.
            profile: Normalization override. Chosen from the model name if omitted.

        Raises:
            ModelLoadError: If ONNX Runtime cannot load the model.
            UnsupportedModelShape: If the model input is not a single rank-4 image.
        """
        runtime = context if context is not None else RuntimeContext(auto_close=True)
        try:
            session = runtime.create_session(model_path)
        except ModelLoadError:
            if context is None:
                runtime.close()
            raise
        try:
            return cls(
                session,
                model_name=str(model_path),
                context=runtime,
                labels=load_labels(labels_path),
                profile=profile,
            )
        except Exception:
            runtime.release_session()
            raise

    # -- Introspection ------------------------------------------------------

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def input_spec(self) -> ImageInputSpec:
        return self._spec

    @property
    def input_width(self) -> int:
        return self._spec.width

    @property
    def input_height(self) -> int:
        return self._spec.height

    @property
    def is_planar_layout(self) -> bool:
        return self._spec.layout is Layout.PLANAR

    @property
    def profile(self) -> NormalizationProfile:
        return self._profile

    @property
    def labels(self) -> list[str] | None:
        return self._labels

    @property
    def closed(self) -> bool:
        with self._close_lock:
            return self._closed

    @property
    def pending(self) -> int:
        """Number of asynchronous classifications not yet finished."""
        return self._executor.pending

    # -- Classification -----------------------------------------------------

    def classify(self, image: ImageLike, top_k: int = 5) -> RankedResult:
        """Classify an image on the calling thread.

        Raises:
            ClassifierClosedError: If the classifier has been closed.
            DecodeError: If the image cannot be resampled.
            UnsupportedOutputShape: If the model output is not a score vector.
            InferenceError: If ONNX Runtime fails.
        """
        self._check_open()
        return self._run_pipeline(image, top_k)

    def classify_async(
        self,
        image: ImageLike,
        top_k: int = 5,
        callback: Callable[[Future[RankedResult]], object] | None = None,
    ) -> Future[RankedResult]:
        """Queue a classification on this classifier's worker thread.

        Returns immediately. The future resolves with the result or fails with
        the error that ended the call; other queued work is unaffected.
        ``callback`` receives the finished future once the call completes.

        Raises:
            ClassifierClosedError: If the classifier has been closed.
        """
        self._check_open()
        future = self._executor.run_async(self._run_pipeline, image, top_k)
        if callback is not None:
            future.add_done_callback(callback)
        return future

    # -- Lifecycle ----------------------------------------------------------

    def close(self) -> None:
        """Stop accepting work, drain the queue, and release the session.

        Calling ``close`` again is a no-op.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown()
        self._context.release_session()
        logger.info("Classifier for %s closed", self._model_name)

    def __enter__(self) -> Classifier:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _check_open(self) -> None:
        if self.closed:
            raise ClassifierClosedError(f"Classifier for {self._model_name} is closed")

    def _run_pipeline(self, image: ImageLike, top_k: int) -> RankedResult:
        tensor = preprocess(image, self._spec, self._profile)
        scores, latency_ms = self._executor.run_sync(tensor)
        result = rank(scores, self._labels, top_k, latency_ms=latency_ms)
        if logger.isEnabledFor(logging.DEBUG):
            for line in result.diagnostics.report_lines():
                logger.debug(line)
        return result
