"""API route definitions."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Query, UploadFile, status
from fastapi.responses import JSONResponse

from classifyx.api.dependencies import get_app_settings, get_classifier, get_optional_classifier, verify_api_key
from classifyx.api.schemas import (
    ChartData,
    ClassifyImageResponse,
    DiagnosticsInfo,
    ErrorResponse,
    HealthResponse,
    ImageTag,
    ModelInfo,
)
from classifyx.config import Settings  # noqa: TC001 - resolved by FastAPI at runtime
from classifyx.errors import ClassifierClosedError, DecodeError, InferenceError, UnsupportedOutputShape
from classifyx.ml.image_classifier import Classifier  # noqa: TC001 - resolved by FastAPI at runtime
from classifyx.ml.normalization import profile_name
from classifyx.ml.preprocessing import decode_image

if TYPE_CHECKING:
    from classifyx.ml.ranking import RankedResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _to_response(result: RankedResult) -> ClassifyImageResponse:
    tags = [ImageTag(label=s.label, confidence=min(max(s.score, 0.0), 1.0)) for s in result.scores]
    diag = result.diagnostics
    return ClassifyImageResponse(
        tags=tags,
        diagnostics=DiagnosticsInfo(
            latency_ms=diag.latency_ms,
            logits_min=diag.logits_min,
            logits_max=diag.logits_max,
            probability_sum=diag.probability_sum,
            top_confidence=diag.top_confidence,
            entropy_bits=diag.entropy_bits,
        ),
        chart=ChartData(
            categories=[tag.label for tag in tags],
            values=[tag.confidence for tag in tags],
        ),
    )


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify an image with tags",
)
async def classify_image(
    file: UploadFile,
    settings: Annotated[Settings, Depends(get_app_settings)],
    classifier: Annotated[Classifier, Depends(get_classifier)],
    top_k: Annotated[int | None, Query()] = None,
) -> ClassifyImageResponse | JSONResponse:
    """Classify an uploaded image and return ranked tags."""
    data = await file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "Uploaded file is too large")

    k = max(1, min(top_k if top_k is not None else settings.default_top_k, settings.max_top_k))

    try:
        image = await asyncio.to_thread(decode_image, data, settings.max_image_pixels)
        result = await asyncio.wrap_future(classifier.classify_async(image, k))
    except DecodeError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))
    except ClassifierClosedError as exc:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))
    except (UnsupportedOutputShape, InferenceError) as exc:
        logger.error("Classification of %s failed: %s", file.filename, exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    logger.info(
        "Classified %s: top=%s (%.4f) in %.1f ms",
        file.filename,
        result.top.label,
        result.top.score,
        result.diagnostics.latency_ms,
    )
    return _to_response(result)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(
    classifier: Annotated[Classifier | None, Depends(get_optional_classifier)],
) -> HealthResponse:
    """Return service health status."""
    return HealthResponse(
        status="ok",
        model_loaded=classifier is not None,
        pending_requests=classifier.pending if classifier is not None else 0,
    )


@router.get(
    "/model",
    response_model=ModelInfo,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse}},
    summary="Describe the loaded model",
)
async def model_info(
    classifier: Annotated[Classifier, Depends(get_classifier)],
) -> ModelInfo:
    """Return the loaded model's input spec and preprocessing settings."""
    spec = classifier.input_spec
    return ModelInfo(
        name=classifier.model_name,
        input_name=spec.input_name,
        layout=str(spec.layout),
        width=spec.width,
        height=spec.height,
        normalization=profile_name(classifier.profile),
        num_labels=len(classifier.labels) if classifier.labels else 0,
    )
