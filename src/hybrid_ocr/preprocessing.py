"""
Image Preprocessing
===================

Deterministic pixel transforms that condition an image for OCR.

Stage order is fixed: upscale, denoise, grayscale, brightness, contrast,
sharpen, binarize. Every stage returns a new ``PixelBuffer``; a stage that
fails is skipped with a warning and the previous buffer flows on.

Usage:
    from hybrid_ocr.preprocessing import PreprocessOptions, preprocess, auto_preprocess

    buffer = preprocess(buffer, PreprocessOptions(grayscale=True, binarize=True))

    # or let the image pick its own parameters
    buffer = auto_preprocess(buffer)
"""

import logging
from dataclasses import dataclass
from typing import Callable

import numpy as np
from PIL import Image

from .decoder import PixelBuffer
from .errors import ErrorFactory

logger = logging.getLogger(__name__)

MAX_UPSCALE = 4.0

# Auto mode thresholds on mean luma
DARK_MEAN_LUMA = 100
BRIGHT_MEAN_LUMA = 180
MIN_AUTO_WIDTH = 800
MIN_AUTO_HEIGHT = 600

_ROW_CHUNK = 1024

SHARPEN_KERNEL = np.array([[0, -1, 0], [-1, 5, -1], [0, -1, 0]])


@dataclass(frozen=True)
class PreprocessOptions:
    """
    Which stages to run. ``None`` (or a neutral value) skips a stage.

    Attributes:
        grayscale: Collapse RGB to luma
        contrast: Contrast factor, 1.0 disables
        brightness: Additive offset per channel, 0 disables
        sharpen: 3x3 sharpening convolution
        binarize: Otsu global threshold to pure black/white
        denoise: 3x3 median filter
        upscale: Resample factor, values <= 1 disable
    """

    grayscale: bool | None = None
    contrast: float | None = None
    brightness: float | None = None
    sharpen: bool | None = None
    binarize: bool | None = None
    denoise: bool | None = None
    upscale: float | None = None

    @classmethod
    def document_defaults(cls) -> "PreprocessOptions":
        """General-purpose preset for printed documents."""
        return cls(
            grayscale=True,
            contrast=1.3,
            brightness=10,
            sharpen=True,
            binarize=True,
            denoise=False,
        )

    def enabled_stages(self) -> list[str]:
        """Names of the stages these options will run, in execution order."""
        stages = []
        if self.upscale is not None and self.upscale > 1:
            stages.append("upscale")
        if self.denoise:
            stages.append("denoise")
        if self.grayscale:
            stages.append("grayscale")
        if self.brightness:
            stages.append("brightness")
        if self.contrast is not None and self.contrast != 1.0:
            stages.append("contrast")
        if self.sharpen:
            stages.append("sharpen")
        if self.binarize:
            stages.append("binarize")
        return stages


def _to_uint8(values: np.ndarray) -> np.ndarray:
    """Round half-to-even and clamp to [0, 255], like a clamped 8-bit canvas."""
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def _with_rgb(buffer: PixelBuffer, rgb: np.ndarray) -> PixelBuffer:
    samples = buffer.samples.copy()
    samples[..., :3] = rgb
    return PixelBuffer(buffer.width, buffer.height, samples)


# ============================================================================
# Stages
# ============================================================================


def upscale(buffer: PixelBuffer, scale: float) -> PixelBuffer:
    """Bilinear resample to ``width*scale`` x ``height*scale``."""
    if scale <= 1:
        return buffer
    if scale > MAX_UPSCALE:
        logger.warning("Upscale factor %.2f clamped to %.1f", scale, MAX_UPSCALE)
        scale = MAX_UPSCALE

    new_size = (
        max(1, int(round(buffer.width * scale))),
        max(1, int(round(buffer.height * scale))),
    )
    resized = buffer.to_image().resize(new_size, Image.Resampling.BILINEAR)
    return PixelBuffer.from_image(resized)


def denoise(buffer: PixelBuffer) -> PixelBuffer:
    """
    3x3 median filter per RGB channel.

    Interior pixels take the median of their 9-neighborhood and become
    opaque; the 1px border is left as is.
    """
    h, w = buffer.height, buffer.width
    if h < 3 or w < 3:
        return buffer

    src = buffer.samples
    out = src.copy()
    for top in range(1, h - 1, _ROW_CHUNK):
        bottom = min(top + _ROW_CHUNK, h - 1)
        for c in range(3):
            neighbors = np.stack(
                [
                    src[top - 1 + dy : bottom - 1 + dy, dx : w - 2 + dx, c]
                    for dy in range(3)
                    for dx in range(3)
                ]
            )
            out[top:bottom, 1 : w - 1, c] = np.partition(neighbors, 4, axis=0)[4]
        out[top:bottom, 1 : w - 1, 3] = 255
    return PixelBuffer(w, h, out)


def grayscale(buffer: PixelBuffer) -> PixelBuffer:
    """Write luma to all three color channels; alpha is kept."""
    gray = _to_uint8(buffer.luma())
    return _with_rgb(buffer, gray[..., np.newaxis])


def adjust_brightness(buffer: PixelBuffer, amount: float) -> PixelBuffer:
    """Add ``amount`` to every color channel."""
    rgb = buffer.samples[..., :3].astype(np.float64) + amount
    return _with_rgb(buffer, _to_uint8(rgb))


def contrast_factor(factor: float) -> float:
    """Transfer slope ``259*(f+255) / (255*(259-f))``."""
    return (259 * (factor + 255)) / (255 * (259 - factor))


def enhance_contrast(buffer: PixelBuffer, factor: float) -> PixelBuffer:
    """Stretch channels around the midtone 128."""
    slope = contrast_factor(factor)
    rgb = slope * (buffer.samples[..., :3].astype(np.float64) - 128) + 128
    return _with_rgb(buffer, _to_uint8(rgb))


def sharpen(buffer: PixelBuffer) -> PixelBuffer:
    """
    Convolve interior pixels with ``[0,-1,0; -1,5,-1; 0,-1,0]``.

    Border pixels of width 1 are not modified.
    """
    h, w = buffer.height, buffer.width
    if h < 3 or w < 3:
        return buffer

    src = buffer.samples[..., :3].astype(np.int16)
    center = src[1:-1, 1:-1]
    result = (
        5 * center
        - src[:-2, 1:-1]
        - src[2:, 1:-1]
        - src[1:-1, :-2]
        - src[1:-1, 2:]
    )

    out = buffer.samples.copy()
    out[1:-1, 1:-1, :3] = np.clip(result, 0, 255).astype(np.uint8)
    out[1:-1, 1:-1, 3] = 255
    return PixelBuffer(w, h, out)


def otsu_threshold(gray: np.ndarray) -> int:
    """
    Threshold maximizing between-class variance ``wB*wF*(mB-mF)^2``.

    Ties keep the lowest threshold.
    """
    hist = np.bincount(gray.ravel(), minlength=256).astype(np.float64)
    total = float(gray.size)
    sum_total = float(np.dot(hist, np.arange(256)))

    sum_b = 0.0
    w_b = 0.0
    max_variance = 0.0
    threshold = 0
    for t in range(256):
        w_b += hist[t]
        if w_b == 0:
            continue
        w_f = total - w_b
        if w_f == 0:
            break
        sum_b += t * hist[t]
        mean_b = sum_b / w_b
        mean_f = (sum_total - sum_b) / w_f
        variance = w_b * w_f * (mean_b - mean_f) ** 2
        if variance > max_variance:
            max_variance = variance
            threshold = t
    return threshold


def binarize(buffer: PixelBuffer) -> PixelBuffer:
    """Pure black/white at the Otsu threshold of the luma channel."""
    gray = _to_uint8(buffer.luma())
    threshold = otsu_threshold(gray)
    value = np.where(gray > threshold, 255, 0).astype(np.uint8)
    return _with_rgb(buffer, value[..., np.newaxis])


# ============================================================================
# Pipeline
# ============================================================================


def _run_stage(
    name: str,
    transform: Callable[[PixelBuffer], PixelBuffer],
    buffer: PixelBuffer,
) -> PixelBuffer:
    try:
        return transform(buffer)
    except Exception as e:
        error = ErrorFactory.preprocessing_failed(name, e)
        logger.warning(
            "Preprocessing stage '%s' failed, keeping previous buffer: %s",
            name,
            error.technical_details["error"],
        )
        return buffer


def preprocess(buffer: PixelBuffer, options: PreprocessOptions) -> PixelBuffer:
    """
    Run the enabled stages in their fixed order.

    Never raises for a well-formed buffer: failing stages degrade to the
    previous stage's output.
    """
    stages: list[tuple[str, Callable[[PixelBuffer], PixelBuffer]]] = []

    if options.upscale is not None and options.upscale > 1:
        stages.append(("upscale", lambda b: upscale(b, options.upscale)))
    if options.denoise:
        stages.append(("denoise", denoise))
    if options.grayscale:
        stages.append(("grayscale", grayscale))
    if options.brightness:
        stages.append(("brightness", lambda b: adjust_brightness(b, options.brightness)))
    if options.contrast is not None and options.contrast != 1.0:
        stages.append(("contrast", lambda b: enhance_contrast(b, options.contrast)))
    if options.sharpen:
        stages.append(("sharpen", sharpen))
    if options.binarize:
        stages.append(("binarize", binarize))

    for name, transform in stages:
        buffer = _run_stage(name, transform, buffer)

    logger.debug(
        "Preprocessed to %dx%d with stages %s",
        buffer.width,
        buffer.height,
        [name for name, _ in stages],
    )
    return buffer


def mean_luma(buffer: PixelBuffer) -> float:
    """Mean luma over the whole image, from per-channel means (luma is linear)."""
    if buffer.width == 0 or buffer.height == 0:
        return 0.0
    r, g, b = (float(buffer.samples[..., c].mean(dtype=np.float64)) for c in range(3))
    return 0.299 * r + 0.587 * g + 0.114 * b


def auto_options(buffer: PixelBuffer) -> PreprocessOptions:
    """
    Pick preprocessing parameters from the image itself.

    Dark images (mean luma < 100) get +30 brightness and contrast 1.5,
    bright ones (> 180) get -20 and 1.3, the rest 0 and 1.2. Grayscale,
    sharpen and binarize are always on; images smaller than 800x600 are
    upscaled 2x.
    """
    mean = mean_luma(buffer)

    if mean < DARK_MEAN_LUMA:
        brightness, contrast = 30, 1.5
    elif mean > BRIGHT_MEAN_LUMA:
        brightness, contrast = -20, 1.3
    else:
        brightness, contrast = 0, 1.2

    small = buffer.width < MIN_AUTO_WIDTH or buffer.height < MIN_AUTO_HEIGHT

    return PreprocessOptions(
        grayscale=True,
        sharpen=True,
        binarize=True,
        brightness=brightness,
        contrast=contrast,
        upscale=2 if small else None,
    )


def auto_preprocess(buffer: PixelBuffer) -> PixelBuffer:
    """Preprocess with parameters chosen by ``auto_options``."""
    options = auto_options(buffer)
    logger.info(
        "Auto preprocessing %dx%d image: brightness=%s contrast=%s upscale=%s",
        buffer.width,
        buffer.height,
        options.brightness,
        options.contrast,
        options.upscale,
    )
    return preprocess(buffer, options)
