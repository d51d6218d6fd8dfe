"""
Image Decoder
=============

Decodes PNG/JPEG/WEBP bytes into an addressable RGBA pixel buffer and
encodes buffers back into an engine-ready PNG.
"""

import logging
from dataclasses import dataclass
from io import BytesIO

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import ErrorFactory

logger = logging.getLogger(__name__)


@dataclass
class PixelBuffer:
    """RGBA pixels as a ``(height, width, 4)`` uint8 array."""

    width: int
    height: int
    samples: np.ndarray

    def __post_init__(self) -> None:
        if self.samples.dtype != np.uint8:
            raise ValueError(f"samples must be uint8, got {self.samples.dtype}")
        if self.samples.size != self.width * self.height * 4:
            raise ValueError(
                f"samples has {self.samples.size} values, expected "
                f"{self.width}x{self.height}x4 = {self.width * self.height * 4}"
            )
        if self.samples.shape != (self.height, self.width, 4):
            self.samples = self.samples.reshape(self.height, self.width, 4)

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        return cls(
            width=rgba.width,
            height=rgba.height,
            samples=np.array(rgba, dtype=np.uint8),
        )

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.samples)

    def luma(self) -> np.ndarray:
        """Per-pixel luma ``0.299R + 0.587G + 0.114B`` as float64."""
        rgb = self.samples[..., :3].astype(np.float64)
        return 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]


def decode_image(data: bytes) -> PixelBuffer:
    """
    Decode image bytes into an RGBA ``PixelBuffer``.

    The EXIF orientation tag is applied so photos reach the engines upright.

    Raises:
        OCRError: FILE_CORRUPTED if the bytes cannot be decoded,
            IMAGE_LOAD_FAILED if decoding yields an unusable image,
            OUT_OF_MEMORY if the pixels cannot be allocated
    """
    try:
        with Image.open(BytesIO(data)) as image:
            image.load()
            oriented = ImageOps.exif_transpose(image)
            buffer = PixelBuffer.from_image(oriented)
    except (UnidentifiedImageError, SyntaxError) as e:
        raise ErrorFactory.file_corrupted(e) from e
    except Image.DecompressionBombError as e:
        raise ErrorFactory.image_load_failed(e) from e
    except MemoryError as e:
        raise ErrorFactory.out_of_memory(e) from e
    except (OSError, ValueError) as e:
        # truncated streams and broken chunks surface as OSError
        raise ErrorFactory.file_corrupted(e) from e

    if buffer.width == 0 or buffer.height == 0:
        raise ErrorFactory.image_load_failed(
            f"decoded image has zero size ({buffer.width}x{buffer.height})"
        )

    logger.debug("Decoded image %dx%d", buffer.width, buffer.height)
    return buffer


def encode_png(buffer: PixelBuffer) -> bytes:
    """Encode a buffer as PNG bytes."""
    out = BytesIO()
    buffer.to_image().save(out, format="PNG")
    return out.getvalue()
