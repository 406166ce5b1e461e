"""Shared fixtures: a scriptable stand-in for an ONNX Runtime session."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
import pytest

if TYPE_CHECKING:
    from collections.abc import Callable


@dataclass
class FakeNode:
    name: str
    shape: list[object]
    type: str = "tensor(float)"


@dataclass
class FakeSession:
    """Mimics the parts of ``onnxruntime.InferenceSession`` the classifier uses."""

    inputs: list[FakeNode] = field(default_factory=lambda: [FakeNode("input", [1, 3, 224, 224])])
    outputs: list[FakeNode] = field(default_factory=lambda: [FakeNode("logits", [1, 10])])
    output_fn: Callable[[np.ndarray], object] | None = None
    calls: list[tuple[list[str] | None, dict[str, np.ndarray]]] = field(default_factory=list)
    concurrent: int = 0
    max_concurrent: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def get_inputs(self) -> list[FakeNode]:
        return self.inputs

    def get_outputs(self) -> list[FakeNode]:
        return self.outputs

    def run(self, output_names: list[str] | None, feeds: dict[str, np.ndarray]) -> list[object]:
        with self._lock:
            self.concurrent += 1
            self.max_concurrent = max(self.max_concurrent, self.concurrent)
            self.calls.append((output_names, feeds))
        try:
            batch = next(iter(feeds.values()))
            if self.output_fn is not None:
                return [self.output_fn(batch)]
            # Ten decreasing logits: class_0 scores highest.
            return [np.arange(10, 0, -1, dtype=np.float32).reshape(1, 10)]
        finally:
            with self._lock:
                self.concurrent -= 1


@pytest.fixture()
def fake_session() -> FakeSession:
    return FakeSession()
