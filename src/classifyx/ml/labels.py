"""Class label files: UTF-8 text, one label per line, blank lines ignored."""

from __future__ import annotations

import logging
from pathlib import Path

from classifyx.errors import LabelFileError

logger = logging.getLogger(__name__)


def read_labels(path: str | Path) -> list[str]:
    """Read a labels file.

    Returns:
        Trimmed, non-empty lines; position is the class index.

    Raises:
        LabelFileError: If the file cannot be read or is not valid UTF-8.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise LabelFileError(f"Cannot read labels file {path}: {exc}") from exc
    return [line.strip() for line in text.splitlines() if line.strip()]


def load_labels(path: str | Path | None) -> list[str] | None:
    """Load labels if a file is configured and present.

    A missing or unreadable file is not fatal: the failure is logged and
    ``None`` is returned so callers fall back to ``class_<index>`` names.
    """
    if path is None:
        return None
    labels_path = Path(path)
    if not labels_path.exists():
        logger.info("Labels file %s not found, using synthesized labels", labels_path)
        return None
    try:
        labels = read_labels(labels_path)
    except LabelFileError as exc:
        logger.warning("%s; using synthesized labels", exc)
        return None
    if not labels:
        logger.warning("Labels file %s is empty, using synthesized labels", labels_path)
        return None
    logger.info("Loaded %d labels from %s", len(labels), labels_path)
    return labels
