"""
The working image value threaded through a pipeline run.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from PIL import Image

from . import encoders
from .errors import ParamsInvalid
from .quality import DIFF_UNAVAILABLE, perceptual_diff

logger = logging.getLogger(__name__)


@dataclass
class ProcessImage:
    """
    Per-run image state.

    An empty `buffer` means the pixels must be encoded on demand; any pixel
    mutation clears it so a stale buffer is never emitted.
    """
    pixels: Optional[Image.Image] = None
    original: Optional[Image.Image] = None    # RGBA snapshot taken at load, never overwritten
    ext: str = ""
    buffer: bytes = b""
    original_size: int = 0                    # byte length at load
    diff: Optional[float] = None

    @classmethod
    def new(cls, data: bytes, ext: str) -> "ProcessImage":
        """
        Decode raw bytes into a fresh image value.

        Raises:
            ParamsInvalid: unsupported format
            ImageDecodeError: malformed bytes
        """
        ext = encoders.normalize_format(ext)
        pixels = encoders.decode(data, ext)
        logger.debug("loaded %s image %dx%d (%d bytes)", ext, pixels.width, pixels.height, len(data))
        return cls(pixels=pixels, ext=ext, buffer=bytes(data), original_size=len(data))

    @property
    def width(self) -> int:
        return self.pixels.width if self.pixels is not None else 0

    @property
    def height(self) -> int:
        return self.pixels.height if self.pixels is not None else 0

    def with_pixels(self, pixels: Image.Image) -> "ProcessImage":
        """Return a copy carrying new pixels and no cached buffer."""
        return replace(self, pixels=pixels, buffer=b"")

    def get_buffer(self) -> bytes:
        """Encoded bytes: the cached buffer, or the pixels encoded in the current format."""
        if self.buffer:
            return self.buffer
        if self.pixels is None:
            raise ParamsInvalid("get_buffer: image is not loaded")
        return encoders.save_as(self.pixels, self.ext)

    def support_dssim(self) -> bool:
        return self.ext != encoders.IMAGE_TYPE_GIF

    def get_diff(self) -> float:
        if self.original is None:
            return DIFF_UNAVAILABLE
        return perceptual_diff(self.original, self.pixels, supported=self.support_dssim())
