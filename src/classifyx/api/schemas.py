"""Pydantic request/response schemas for the ClassifyX API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ImageTag(BaseModel):
    """A single classification tag with confidence score."""

    label: str
    confidence: float = Field(ge=0.0, le=1.0)


class DiagnosticsInfo(BaseModel):
    """Metrics describing one inference call."""

    latency_ms: float = Field(description="Session run time in milliseconds")
    logits_min: float
    logits_max: float
    probability_sum: float = Field(description="Sum of the full softmax distribution (~1.0)")
    top_confidence: float
    entropy_bits: float = Field(description="Shannon entropy of the distribution in bits")


class ChartData(BaseModel):
    """Bar chart series for rendering the ranked scores."""

    title: str = "Classification Results"
    x_label: str = "Classes"
    y_label: str = "Scores"
    categories: list[str]
    values: list[float]


class ClassifyImageResponse(BaseModel):
    """Response for image classification endpoint."""

    tags: list[ImageTag]
    diagnostics: DiagnosticsInfo
    chart: ChartData


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    model_loaded: bool
    pending_requests: int


class ModelInfo(BaseModel):
    """Information about the loaded model."""

    name: str
    input_name: str
    layout: str = Field(description="Input layout: 'NCHW' (planar) or 'NHWC' (interleaved)")
    width: int
    height: int
    normalization: str
    num_labels: int = Field(description="Number of labels loaded (0 = synthesized class_<i> names)")


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
