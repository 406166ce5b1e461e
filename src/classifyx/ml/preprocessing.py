"""Image preprocessing pipeline.

Decodes uploaded bytes into RGB images, resamples them to the model's input
size, and serializes the pixels into a flat float32 tensor buffer in the
model's layout.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from classifyx.errors import DecodeError
from classifyx.ml.input_spec import Layout
from classifyx.ml.normalization import normalize_pixels

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from classifyx.ml.input_spec import ImageInputSpec
    from classifyx.ml.normalization import NormalizationProfile


ImageLike = Image.Image | np.ndarray


def decode_image(image_bytes: bytes, max_pixels: int | None = None) -> Image.Image:
    """Decode raw image bytes into an RGB Pillow image.

    EXIF orientation is applied so the pixels match what a viewer shows.

    Args:
        image_bytes: Raw file bytes (any format Pillow can read).
        max_pixels: Reject images with more pixels than this.

    Raises:
        DecodeError: If the bytes are not a readable image or exceed the limit.
    """
    if not image_bytes:
        raise DecodeError("Empty image data")
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size
            if max_pixels is not None and width * height > max_pixels:
                raise DecodeError(f"Image too large: {width}x{height} exceeds {max_pixels} pixels")
            img.load()
            return to_rgb_image(ImageOps.exif_transpose(img))
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Cannot decode image: {exc}") from exc


def to_rgb_image(image: ImageLike) -> Image.Image:
    """Coerce a Pillow image or uint8 array into an RGB Pillow image.

    Arrays may be ``HxW`` (grayscale), ``HxWx3`` (RGB) or ``HxWx4`` (RGBA)
    and must hold 8-bit values. Transparent pixels are composited onto black.

    Raises:
        DecodeError: If the image has zero area, an unsupported array shape,
            or array values outside 0..255.
    """
    if isinstance(image, np.ndarray):
        if image.ndim not in (2, 3) or (image.ndim == 3 and image.shape[2] not in (1, 3, 4)):
            raise DecodeError(f"Unsupported image array shape: {image.shape}")
        if image.size == 0:
            raise DecodeError(f"Image has zero dimensions: {image.shape}")
        if image.dtype != np.uint8 and (
            image.dtype.kind not in "iu" or image.min() < 0 or image.max() > 255
        ):
            raise DecodeError(f"Image array must hold 8-bit values 0..255, got dtype {image.dtype}")
        array = image.astype(np.uint8, copy=False)
        if array.ndim == 3 and array.shape[2] == 1:
            array = array[:, :, 0]
        try:
            image = Image.fromarray(array)
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"Cannot convert array to image: {exc}") from exc

    if image.width <= 0 or image.height <= 0:
        raise DecodeError(f"Image has zero dimensions: {image.width}x{image.height}")
    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info:
        rgba = image.convert("RGBA")
        canvas = Image.new("RGB", rgba.size)
        canvas.paste(rgba, mask=rgba.getchannel("A"))
        return canvas
    return image.convert("RGB")


def preprocess(
    image: ImageLike,
    spec: ImageInputSpec,
    profile: NormalizationProfile,
) -> NDArray[np.float32]:
    """Resize an image to the model input and flatten it into a tensor buffer.

    The image is bilinearly resampled to exactly ``spec.width x spec.height``
    (aspect ratio is not preserved and nothing is cropped).

    Returns:
        Flat float32 array of length ``3 * width * height``. Planar layout
        stores all R values, then all G, then all B; interleaved stores
        R, G, B per pixel.

    Raises:
        DecodeError: If the image cannot be sampled.
    """
    rgb = to_rgb_image(image)
    try:
        if rgb.size != (spec.width, spec.height):
            rgb = rgb.resize((spec.width, spec.height), Image.Resampling.BILINEAR)
        pixels = np.asarray(rgb, dtype=np.uint8)
    except (OSError, ValueError) as exc:
        raise DecodeError(f"Cannot resample image: {exc}") from exc

    normalized = normalize_pixels(profile, pixels)
    if spec.layout is Layout.PLANAR:
        normalized = normalized.transpose(2, 0, 1)
    return np.ascontiguousarray(normalized, dtype=np.float32).ravel()
