"""
Pipeline operations for imageoptimize.

One Process per step: load, resize, crop, gray, watermark, optim. Each takes a
ProcessImage and returns a new one; the input value is not mutated.
"""

import logging
from dataclasses import replace
from enum import Enum
from typing import Tuple

from PIL import Image

from . import encoders
from .errors import ImageProcessingError, ParamsInvalid
from .image_io import load_image
from .images import ProcessImage

logger = logging.getLogger(__name__)


class Process:
    """A single pipeline step."""

    async def process(self, img: ProcessImage) -> ProcessImage:
        raise NotImplementedError


def _require_pixels(img: ProcessImage, step: str) -> Image.Image:
    if img.pixels is None:
        raise ParamsInvalid(f"{step}: image is not loaded")
    return img.pixels


class LoaderProcess(Process):
    """Loads image data from http, file or base64. The incoming value is discarded."""

    def __init__(self, data: str, ext: str = ""):
        self.data = data
        self.ext = ext

    async def process(self, img: ProcessImage) -> ProcessImage:
        return await load_image(self.data, self.ext)


def resize_dimensions(width: int, height: int, src_width: int, src_height: int) -> Tuple[int, int]:
    """
    Fill in a zero target dimension from the source aspect ratio.

    Integer arithmetic: w = src_w * h // src_h and h = src_h * w // src_w.
    A computed dimension never drops below 1.
    """
    if width == 0:
        width = max(1, src_width * height // src_height)
    if height == 0:
        height = max(1, src_height * width // src_width)
    return width, height


class ResizeProcess(Process):
    """Resizes with Lanczos resampling; 0 for one side keeps the aspect ratio."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height

    async def process(self, img: ProcessImage) -> ProcessImage:
        pixels = _require_pixels(img, "resize")
        if self.width == 0 and self.height == 0:
            return img
        # a crop clamped past the edge leaves nothing to scale
        if pixels.width == 0 or pixels.height == 0:
            return img
        w, h = resize_dimensions(self.width, self.height, pixels.width, pixels.height)
        return img.with_pixels(pixels.resize((w, h), Image.Resampling.LANCZOS))


class GrayProcess(Process):
    """Converts to luma, stored back as RGBA."""

    async def process(self, img: ProcessImage) -> ProcessImage:
        pixels = _require_pixels(img, "gray")
        return img.with_pixels(pixels.convert("L").convert("RGBA"))


def clamp_crop_box(x: int, y: int, width: int, height: int,
                   img_width: int, img_height: int) -> Tuple[int, int, int, int]:
    """Clamp a crop rectangle into the image bounds; returns a (left, upper, right, lower) box."""
    x = min(x, img_width)
    y = min(y, img_height)
    width = min(width, img_width - x)
    height = min(height, img_height - y)
    return x, y, x + width, y + height


class CropProcess(Process):
    """Extracts a sub-rectangle, clamped to the image."""

    def __init__(self, x: int, y: int, width: int, height: int):
        self.x = x
        self.y = y
        self.width = width
        self.height = height

    async def process(self, img: ProcessImage) -> ProcessImage:
        pixels = _require_pixels(img, "crop")
        box = clamp_crop_box(self.x, self.y, self.width, self.height, pixels.width, pixels.height)
        return img.with_pixels(pixels.crop(box))


class WatermarkPosition(Enum):
    LEFT_TOP = "leftTop"
    TOP = "top"
    RIGHT_TOP = "rightTop"
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    LEFT_BOTTOM = "leftBottom"
    BOTTOM = "bottom"
    RIGHT_BOTTOM = "rightBottom"

    @classmethod
    def parse(cls, value: str) -> "WatermarkPosition":
        """Unrecognized keywords map to RIGHT_BOTTOM."""
        try:
            return cls(value)
        except ValueError:
            return cls.RIGHT_BOTTOM


def watermark_offset(position: WatermarkPosition, width: int, height: int,
                     mark_width: int, mark_height: int,
                     margin_left: int = 0, margin_top: int = 0) -> Tuple[int, int]:
    """
    Top-left offset of a watermark on a host image.

    Centered axes use floor halving; the result may be negative.
    """
    P = WatermarkPosition
    x = y = 0
    if position in (P.TOP, P.CENTER, P.BOTTOM):
        x = (width - mark_width) >> 1
    elif position in (P.RIGHT_TOP, P.RIGHT, P.RIGHT_BOTTOM):
        x = width - mark_width
    if position in (P.LEFT, P.CENTER, P.RIGHT):
        y = (height - mark_height) >> 1
    elif position in (P.LEFT_BOTTOM, P.BOTTOM, P.RIGHT_BOTTOM):
        y = height - mark_height
    return x + margin_left, y + margin_top


def overlay(base: Image.Image, top: Image.Image, x: int, y: int) -> Image.Image:
    """Alpha-over `top` onto a copy of `base` at (x, y), clipping whatever falls off-canvas."""
    out = base.convert("RGBA")
    top = top.convert("RGBA")
    left, upper = max(x, 0), max(y, 0)
    right, lower = min(x + top.width, out.width), min(y + top.height, out.height)
    if right <= left or lower <= upper:
        return out
    out.alpha_composite(top, dest=(left, upper), source=(left - x, upper - y, right - x, lower - y))
    return out


class WatermarkProcess(Process):
    """Composites an already loaded watermark over the image."""

    def __init__(self, watermark: Image.Image, position: WatermarkPosition = WatermarkPosition.RIGHT_BOTTOM,
                 margin_left: int = 0, margin_top: int = 0):
        self.watermark = watermark
        self.position = position
        self.margin_left = margin_left
        self.margin_top = margin_top

    async def process(self, img: ProcessImage) -> ProcessImage:
        pixels = _require_pixels(img, "watermark")
        x, y = watermark_offset(self.position, pixels.width, pixels.height,
                                self.watermark.width, self.watermark.height,
                                self.margin_left, self.margin_top)
        return img.with_pixels(overlay(pixels, self.watermark, x, y))


def should_replace_buffer(original_type: str, output_type: str, original_size: int, new_size: int) -> bool:
    """
    Whether a freshly encoded buffer replaces the stored one.

    Adopted when the format changed, the new buffer is strictly smaller, or
    there was no stored buffer to compare against.
    """
    return output_type != original_type or new_size < original_size or original_size == 0


class OptimProcess(Process):
    """Re-encodes to the target format (empty keeps the current one)."""

    def __init__(self, output_type: str, quality: int = 80, speed: int = 3):
        self.output_type = output_type
        self.quality = quality
        self.speed = speed

    async def process(self, img: ProcessImage) -> ProcessImage:
        pixels = _require_pixels(img, "optim")
        original_type = img.ext
        original_size = len(img.buffer)
        output_type = encoders.normalize_format(self.output_type) or original_type

        source = img.get_buffer() if output_type == encoders.IMAGE_TYPE_GIF else b""
        data, output_type = encoders.encode(pixels, output_type, self.quality, self.speed, buffer=source)

        if not should_replace_buffer(original_type, output_type, original_size, len(data)):
            logger.debug("optim %s: kept %d bytes, new %d bytes", output_type, original_size, len(data))
            return replace(img, ext=output_type)

        logger.debug("optim %s: adopted %d bytes (was %d)", output_type, len(data), original_size)
        result = replace(img, buffer=data, ext=output_type)
        if result.support_dssim():
            # only diff scoring depends on this, so a failed re-decode is not fatal
            try:
                result = replace(result, pixels=encoders.decode(data, output_type))
            except ImageProcessingError as e:
                logger.debug("optim %s: re-decode failed, %s", output_type, e)
        return result
