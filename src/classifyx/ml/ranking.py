"""Postprocessing: softmax, top-K ranking, and diagnostics."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import ArrayLike, NDArray


@dataclass(frozen=True)
class ClassScore:
    """A single labelled class probability."""

    label: str
    score: float


@dataclass(frozen=True)
class Diagnostics:
    """Per-call metrics describing the raw output and its distribution."""

    latency_ms: float
    logits_min: float
    logits_max: float
    probability_sum: float
    top_confidence: float
    entropy_bits: float

    def report_lines(self) -> list[str]:
        """Human-readable summary, one metric per line."""
        return [
            "ONNX inference:",
            f"  time: {self.latency_ms:.1f} ms",
            f"  logits range: [{self.logits_min:.4f}, {self.logits_max:.4f}]",
            f"  probability sum: {self.probability_sum:.6f}",
            f"  confidence (max): {self.top_confidence:.6f}",
            f"  uncertainty (entropy): {self.entropy_bits:.4f} bits",
        ]


@dataclass(frozen=True)
class RankedResult:
    """Top-K class scores, highest first, with diagnostics."""

    scores: tuple[ClassScore, ...]
    diagnostics: Diagnostics

    def __len__(self) -> int:
        return len(self.scores)

    @property
    def top(self) -> ClassScore:
        return self.scores[0]


def softmax(logits: ArrayLike) -> NDArray[np.float32]:
    """Numerically stable softmax.

    The maximum is subtracted before exponentiating and the sum is taken in
    float64. A zero (or non-finite) sum yields an all-zero distribution.
    """
    values = np.asarray(logits, dtype=np.float64).ravel()
    if values.size == 0:
        return np.zeros(0, dtype=np.float32)
    exps = np.exp(values - values.max())
    total = exps.sum()
    if total == 0.0 or not math.isfinite(total):
        return np.zeros(values.size, dtype=np.float32)
    return (exps / total).astype(np.float32)


def entropy_bits(probs: ArrayLike) -> float:
    """Shannon entropy in bits, summed over strictly positive probabilities."""
    p = np.asarray(probs, dtype=np.float64).ravel()
    p = p[p > 0.0]
    return float(-(p * np.log2(p)).sum())


def top_k_indices(probs: NDArray[np.float32], k: int) -> NDArray[np.intp]:
    """Indices of the ``k`` largest probabilities, ties broken by lower index."""
    # Stable sort on the negated values keeps equal scores in index order.
    order = np.argsort(-probs.astype(np.float64), kind="stable")
    return order[:k]


def label_for(index: int, labels: Sequence[str] | None) -> str:
    if labels is not None and 0 <= index < len(labels):
        return labels[index]
    return f"class_{index}"


def rank(
    raw_scores: ArrayLike,
    labels: Sequence[str] | None = None,
    top_k: int = 5,
    latency_ms: float = 0.0,
) -> RankedResult:
    """Convert raw model scores into a ranked, labelled result.

    Args:
        raw_scores: Flat logits (or probabilities) for every class.
        labels: Optional class names indexed by class id.
        top_k: Number of entries to return; clamped to ``[1, class_count]``.
        latency_ms: Measured inference time, copied into the diagnostics.

    Raises:
        ValueError: If ``raw_scores`` is empty.
    """
    logits = np.asarray(raw_scores, dtype=np.float32).ravel()
    if logits.size == 0:
        raise ValueError("Cannot rank an empty score vector")

    probs = softmax(logits)
    k = min(max(top_k, 1), int(probs.size))

    scores = tuple(ClassScore(label=label_for(int(i), labels), score=float(probs[i])) for i in top_k_indices(probs, k))
    diagnostics = Diagnostics(
        latency_ms=float(latency_ms),
        logits_min=float(logits.min()),
        logits_max=float(logits.max()),
        probability_sum=float(probs.sum(dtype=np.float64)),
        top_confidence=float(probs.max()),
        entropy_bits=entropy_bits(probs),
    )
    return RankedResult(scores=scores, diagnostics=diagnostics)
