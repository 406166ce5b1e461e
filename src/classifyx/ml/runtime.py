"""ONNX Runtime context: model acquisition and session creation.

A ``RuntimeContext`` is built explicitly by the caller and handed to every
``Classifier`` that should share it. It owns the session options and counts
the sessions it has handed out. A caller-built context stays open until its
own ``close()``; a private one (``auto_close=True``) closes itself once the
last of its sessions is released.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from classifyx.errors import ModelLoadError

if TYPE_CHECKING:
    from classifyx.config import Settings

logger = logging.getLogger(__name__)

CPU_PROVIDERS: list[str] = ["CPUExecutionProvider"]


class RuntimeContext:
    """Shared ONNX Runtime state for one or more classifiers."""

    def __init__(
        self,
        intra_op_threads: int = 0,
        inter_op_threads: int = 1,
        models_dir: str | Path = "models",
        *,
        auto_close: bool = False,
    ) -> None:
        self._intra_op_threads = intra_op_threads
        self._inter_op_threads = inter_op_threads
        self._models_dir = Path(models_dir)
        self._auto_close = auto_close

        self._lock = threading.Lock()
        self._active_sessions: int = 0
        self._closed = False

        self._providers = list(CPU_PROVIDERS)
        self._session_options: SessionOptions | None = self._build_session_options()

    @classmethod
    def from_settings(cls, settings: Settings) -> RuntimeContext:
        return cls(
            intra_op_threads=settings.intra_op_threads,
            inter_op_threads=settings.inter_op_threads,
            models_dir=settings.models_dir,
        )

    # -- Public API ---------------------------------------------------------

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def auto_close(self) -> bool:
        return self._auto_close

    @property
    def active_sessions(self) -> int:
        """Number of sessions created by this context and not yet released."""
        with self._lock:
            return self._active_sessions

    def ensure_model(self, settings: Settings) -> tuple[Path, Path | None]:
        """Resolve local model and labels paths, downloading them if needed.

        A configured ``model_path`` that exists on disk wins. Otherwise the
        files are fetched from ``model_repo_id`` on the HuggingFace Hub.

        Raises:
            ModelLoadError: If no model is available locally or remotely.
        """
        labels_path = Path(settings.labels_path) if settings.labels_path else None

        if settings.model_path is not None:
            model_path = Path(settings.model_path)
            if model_path.exists():
                return model_path, labels_path
            if settings.model_repo_id is None:
                raise ModelLoadError(f"Model file not found: {model_path}")

        if settings.model_repo_id is None:
            raise ModelLoadError("No model configured: set CLASSIFYX_MODEL_PATH or CLASSIFYX_MODEL_REPO_ID")

        self._models_dir.mkdir(parents=True, exist_ok=True)
        model_path = self._download(settings.model_repo_id, settings.model_filename)
        if labels_path is None and settings.labels_filename is not None:
            labels_path = self._download(settings.model_repo_id, settings.labels_filename)
        return model_path, labels_path

    def create_session(self, model_path: str | Path) -> InferenceSession:
        """Load a model file into a new session.

        Raises:
            ModelLoadError: If the context is closed, the file is missing, or
                ONNX Runtime rejects the model.
        """
        path = Path(model_path)
        with self._lock:
            if self._closed or self._session_options is None:
                raise ModelLoadError("Runtime context is closed")
            options = self._session_options

        if not path.is_file():
            raise ModelLoadError(f"Model file not found: {path}")

        try:
            session = InferenceSession(
                str(path),
                sess_options=options,
                providers=self._providers,
            )
        except Exception as exc:  # onnxruntime raises its own pybind exception types
            raise ModelLoadError(f"ONNX Runtime could not load {path}: {exc}") from exc

        with self._lock:
            self._active_sessions += 1
        logger.info("Loaded session for %s", path)
        return session

    def release_session(self) -> None:
        """Mark one session as released.

        An ``auto_close`` context closes after its last session is released.
        """
        with self._lock:
            if self._active_sessions == 0:
                return
            self._active_sessions -= 1
            if self._active_sessions == 0 and self._auto_close:
                self._close_locked()

    def close(self) -> None:
        """Release the session options. Safe to call more than once."""
        with self._lock:
            self._close_locked()

    # -- Internal -----------------------------------------------------------

    def _close_locked(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._session_options = None
        logger.info("Runtime context closed")

    def _download(self, repo_id: str, filename: str) -> Path:
        try:
            downloaded = Path(
                hf_hub_download(
                    repo_id=repo_id,
                    filename=filename,
                    local_dir=str(self._models_dir),
                )
            )
        except Exception as exc:  # network, auth, and missing-file errors all abort the load
            raise ModelLoadError(f"Cannot download {filename} from {repo_id}: {exc}") from exc
        logger.info("Downloaded %s to %s", filename, downloaded)
        return downloaded

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._intra_op_threads
        opts.inter_op_num_threads = self._inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True
        return opts
