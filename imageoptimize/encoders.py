"""
Codec gateway for imageoptimize.

Uniform encode/decode entry points per format. Every encoder takes the same
(image, quality, speed) arguments and returns encoded bytes, so adding a format
means adding one entry to ENCODERS.
"""

import io
import logging
from typing import Callable, Dict, List, Optional, Tuple

from PIL import Image, ImageSequence, features

from .errors import CodecError, ImageDecodeError, ParamsInvalid

logger = logging.getLogger(__name__)

IMAGE_TYPE_GIF = "gif"
IMAGE_TYPE_PNG = "png"
IMAGE_TYPE_AVIF = "avif"
IMAGE_TYPE_WEBP = "webp"
IMAGE_TYPE_JPEG = "jpeg"

FORMAT_ALIASES: Dict[str, str] = {"jpg": IMAGE_TYPE_JPEG, "jpe": IMAGE_TYPE_JPEG}

AVIF_DEFAULT_SPEED = 3
PNG_DITHER = Image.Dither.FLOYDSTEINBERG
# GIF has no quality axis; speeds at or above this skip Pillow's palette optimization
GIF_FAST_SPEED = 10


def normalize_format(ext: Optional[str]) -> str:
    """Lower-case a format identifier and fold aliases ('jpg' -> 'jpeg')."""
    ext = (ext or "").strip().lower().lstrip(".")
    return FORMAT_ALIASES.get(ext, ext)


def pillow_format(ext: str) -> Optional[str]:
    """Map a format identifier to Pillow's format name, or None if Pillow can't handle it."""
    ext = normalize_format(ext)
    if not ext:
        return None
    return Image.registered_extensions().get(f".{ext}")


def decode(data: bytes, ext: str) -> Image.Image:
    """
    Decode encoded bytes of a known format into an RGBA image.

    Args:
        data: Encoded image bytes
        ext: Format identifier (e.g. 'png', 'jpeg', 'avif')

    Returns:
        PIL Image in RGBA mode

    Raises:
        ParamsInvalid: the format is not supported
        ImageDecodeError: the bytes are malformed for that format
    """
    fmt = pillow_format(ext)
    if fmt is None:
        raise ParamsInvalid("Image format is not support")
    try:
        with Image.open(io.BytesIO(data), formats=[fmt]) as im:
            im.load()
            return im.convert("RGBA")
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"decode {ext} fail, {e}") from e


def save_as(img: Image.Image, ext: str) -> bytes:
    """
    Encode an image with Pillow defaults in the given format (JPEG if unknown).

    Used to materialize a buffer lazily when no optim step produced one.
    """
    fmt = pillow_format(ext) or "JPEG"
    if fmt == "JPEG" and img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    buf = io.BytesIO()
    try:
        img.save(buf, format=fmt)
    except Exception as e:
        raise CodecError("encode", e) from e
    return buf.getvalue()


def _png_colors(quality: int) -> int:
    # palette size grows with the requested quality, 2..256 colors
    quality = max(0, min(100, quality))
    return max(2, round(256 * quality / 100))


def _quantize_method() -> Image.Quantize:
    if features.check_feature("libimagequant"):
        return Image.Quantize.LIBIMAGEQUANT
    return Image.Quantize.FASTOCTREE


def to_png(img: Image.Image, quality: int, speed: int) -> bytes:
    """
    Palette-quantize and encode as PNG.

    Quality (0-100) maps onto the palette size. Best effort: extreme qualities
    are clamped rather than rejected. Opaque images are remapped onto the
    palette with Floyd-Steinberg dithering; Pillow only remaps RGB, so images
    with transparency are quantized in RGBA without dithering.
    """
    colors = _png_colors(quality)
    method = _quantize_method()
    rgba = img.convert("RGBA")
    try:
        if rgba.getextrema()[3] == (255, 255):
            rgb = rgba.convert("RGB")
            # Pillow ignores dither unless a palette is given
            palette = rgb.quantize(colors=colors, method=method)
            pal = rgb.quantize(palette=palette, dither=PNG_DITHER)
        else:
            pal = rgba.quantize(colors=colors, method=method)
    except Exception as e:
        raise CodecError("png_quantize", e) from e
    buf = io.BytesIO()
    try:
        pal.save(buf, format="PNG", optimize=True)
    except Exception as e:
        raise CodecError("png_encode", e) from e
    return buf.getvalue()


def to_webp(img: Image.Image, quality: int, speed: int) -> bytes:
    """Encode as WEBP; quality 100 means lossless."""
    save_kwargs = dict(format="WEBP")
    if quality == 100:
        save_kwargs["lossless"] = True
    else:
        save_kwargs["quality"] = quality
    buf = io.BytesIO()
    try:
        img.convert("RGBA").save(buf, **save_kwargs)
    except Exception as e:
        raise CodecError("webp_encode", e) from e
    return buf.getvalue()


def to_avif(img: Image.Image, quality: int, speed: int) -> bytes:
    """
    Encode as AVIF.

    `speed` is 0-10 (slowest to fastest); 0 is remapped to the encoder default of 3.
    """
    if speed == 0:
        speed = AVIF_DEFAULT_SPEED
    buf = io.BytesIO()
    try:
        img.convert("RGBA").save(buf, format="AVIF", quality=quality, speed=speed)
    except Exception as e:
        raise CodecError("avif_encode", e) from e
    return buf.getvalue()


def to_jpeg(img: Image.Image, quality: int, speed: int) -> bytes:
    """Encode as baseline optimized JPEG; alpha is dropped."""
    buf = io.BytesIO()
    try:
        img.convert("RGB").save(buf, format="JPEG", quality=quality, optimize=True)
    except Exception as e:
        raise CodecError("jpeg_encode", e) from e
    return buf.getvalue()


def decode_animated(data: bytes) -> List[Tuple[Image.Image, int]]:
    """Decode every frame of an (optionally animated) image as (RGBA frame, duration ms)."""
    frames = []
    try:
        with Image.open(io.BytesIO(data)) as im:
            for frame in ImageSequence.Iterator(im):
                duration = int(frame.info.get("duration", im.info.get("duration", 0)) or 0)
                frames.append((frame.convert("RGBA"), duration))
    except Exception as e:
        raise CodecError("gif_decode", e) from e
    if not frames:
        raise CodecError("gif_decode", ValueError("no frames"))
    return frames


def encode_animated(frames: List[Tuple[Image.Image, int]], speed: int) -> bytes:
    """Encode frames as a GIF that repeats forever."""
    first, rest = frames[0][0], [f for f, _ in frames[1:]]
    durations = [d for _, d in frames]
    save_kwargs = dict(format="GIF", save_all=True, loop=0, optimize=speed < GIF_FAST_SPEED)
    if rest:
        save_kwargs["append_images"] = rest
    if any(durations):
        save_kwargs["duration"] = durations
    buf = io.BytesIO()
    try:
        first.save(buf, **save_kwargs)
    except Exception as e:
        raise CodecError("gif_encode", e) from e
    return buf.getvalue()


def to_gif(data: bytes, speed: int) -> bytes:
    """Re-encode all frames of `data` as an infinitely repeating GIF. Quality does not apply."""
    return encode_animated(decode_animated(data), speed)


ENCODERS: Dict[str, Callable[[Image.Image, int, int], bytes]] = {
    IMAGE_TYPE_PNG: to_png,
    IMAGE_TYPE_AVIF: to_avif,
    IMAGE_TYPE_WEBP: to_webp,
    IMAGE_TYPE_JPEG: to_jpeg,
}


def encode(img: Image.Image, output_type: str, quality: int, speed: int,
           buffer: bytes = b"") -> Tuple[bytes, str]:
    """
    Encode pixels to the requested format.

    Unknown or empty formats fall back to JPEG; the returned format reflects
    what was actually produced.

    Args:
        img: Current pixels
        output_type: Target format identifier
        quality: 0-100
        speed: 0-10
        buffer: Current encoded bytes, the frame source for GIF output

    Returns:
        (encoded_bytes, actual_format)
    """
    output_type = normalize_format(output_type)
    if output_type == IMAGE_TYPE_GIF:
        return to_gif(buffer, speed), IMAGE_TYPE_GIF
    encoder = ENCODERS.get(output_type)
    if encoder is None:
        logger.debug("no encoder for %r, falling back to jpeg", output_type)
        output_type, encoder = IMAGE_TYPE_JPEG, to_jpeg
    return encoder(img, quality, speed), output_type
