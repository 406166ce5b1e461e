"""Per-channel pixel normalization profiles.

A profile maps raw 8-bit RGB values to the floats a model was trained on.
Three profiles cover the common exports:

- ``MeanStdDev``: ``(c / 255 - mean[c]) / std[c]`` (torchvision / ImageNet)
- ``SymmetricScale``: ``(c - center) / scale`` (TF exports, -1..1)
- ``UnitScale``: ``c / 255``

``select_profile`` picks a default from the model name; it is a best-effort
guess and callers that know better should pass a profile explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

IMAGENET_MEAN: tuple[float, float, float] = (0.485, 0.456, 0.406)
IMAGENET_STD: tuple[float, float, float] = (0.229, 0.224, 0.225)


@dataclass(frozen=True)
class MeanStdDev:
    """Scale to 0..1, then standardize each channel."""

    mean: tuple[float, float, float] = IMAGENET_MEAN
    std: tuple[float, float, float] = IMAGENET_STD

    def __post_init__(self) -> None:
        if len(self.mean) != 3 or len(self.std) != 3:
            raise ValueError("mean and std must have exactly 3 channels")
        if any(s == 0 for s in self.std):
            raise ValueError("std values must be non-zero")


@dataclass(frozen=True)
class SymmetricScale:
    """Center and scale raw byte values; 127.5/127.5 maps 0..255 to -1..1."""

    center: float = 127.5
    scale: float = 127.5

    def __post_init__(self) -> None:
        if self.scale == 0:
            raise ValueError("scale must be non-zero")


@dataclass(frozen=True)
class UnitScale:
    """Map 0..255 to 0..1."""


NormalizationProfile = MeanStdDev | SymmetricScale | UnitScale

IMAGENET = MeanStdDev()
SYMMETRIC = SymmetricScale()
UNIT = UnitScale()

NAMED_PROFILES: dict[str, NormalizationProfile] = {
    "imagenet": IMAGENET,
    "symmetric": SYMMETRIC,
    "unit": UNIT,
}

# (case-insensitive substring, profile); first match wins.
DEFAULT_PROFILE_RULES: tuple[tuple[str, NormalizationProfile], ...] = (("efficientnet", SYMMETRIC),)


def select_profile(
    model_id: str,
    rules: Sequence[tuple[str, NormalizationProfile]] = DEFAULT_PROFILE_RULES,
    default: NormalizationProfile = IMAGENET,
) -> NormalizationProfile:
    """Pick a normalization profile from a model path or name.

    Args:
        model_id: Model file path or identifier.
        rules: Ordered ``(substring, profile)`` pairs, matched case-insensitively.
        default: Profile returned when no rule matches.
    """
    lowered = model_id.lower()
    for needle, profile in rules:
        if needle.lower() in lowered:
            return profile
    return default


def profile_name(profile: NormalizationProfile) -> str:
    """Return a short human-readable name for a profile."""
    for name, named in NAMED_PROFILES.items():
        if named == profile:
            return name
    if isinstance(profile, MeanStdDev):
        return f"mean_std(mean={profile.mean}, std={profile.std})"
    if isinstance(profile, SymmetricScale):
        return f"symmetric(center={profile.center}, scale={profile.scale})"
    return "unit"


def normalize(profile: NormalizationProfile, r: int, g: int, b: int) -> tuple[float, float, float]:
    """Normalize a single RGB pixel under ``profile``."""
    if isinstance(profile, MeanStdDev):
        return (
            (r / 255.0 - profile.mean[0]) / profile.std[0],
            (g / 255.0 - profile.mean[1]) / profile.std[1],
            (b / 255.0 - profile.mean[2]) / profile.std[2],
        )
    if isinstance(profile, SymmetricScale):
        return (
            (r - profile.center) / profile.scale,
            (g - profile.center) / profile.scale,
            (b - profile.center) / profile.scale,
        )
    return (r / 255.0, g / 255.0, b / 255.0)


def normalize_pixels(profile: NormalizationProfile, pixels: NDArray[np.uint8]) -> NDArray[np.float32]:
    """Vectorized ``normalize`` over an ``HxWx3`` uint8 array.

    Returns:
        ``HxWx3`` float32 array, channel order preserved.
    """
    values = pixels.astype(np.float32)
    if isinstance(profile, MeanStdDev):
        mean = np.asarray(profile.mean, dtype=np.float32)
        std = np.asarray(profile.std, dtype=np.float32)
        return (values / np.float32(255.0) - mean) / std
    if isinstance(profile, SymmetricScale):
        return (values - np.float32(profile.center)) / np.float32(profile.scale)
    return values / np.float32(255.0)
