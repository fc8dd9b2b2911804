"""Tests for the codec gateway."""

import io

import numpy as np
import pytest
from PIL import Image, features

from conftest import encode, make_logo, make_noise
from imageoptimize import encoders
from imageoptimize.errors import CodecError, ImageDecodeError, ParamsInvalid

HAVE_AVIF = features.check("avif")


@pytest.mark.parametrize("value,expected", [
    ("jpg", "jpeg"),
    ("JPEG", "jpeg"),
    (".png", "png"),
    ("", ""),
    (None, ""),
])
def test_normalize_format(value, expected):
    assert encoders.normalize_format(value) == expected


def test_pillow_format():
    assert encoders.pillow_format("jpg") == "JPEG"
    assert encoders.pillow_format("png") == "PNG"
    assert encoders.pillow_format("gif") == "GIF"
    assert encoders.pillow_format("xyz") is None
    assert encoders.pillow_format("") is None


def test_decode_returns_rgba(logo_png):
    img = encoders.decode(logo_png, "png")
    assert img.mode == "RGBA"
    assert img.size == (144, 144)


def test_decode_unsupported_format(logo_png):
    with pytest.raises(ParamsInvalid):
        encoders.decode(logo_png, "xyz")


def test_decode_malformed_bytes():
    with pytest.raises(ImageDecodeError):
        encoders.decode(b"definitely not a png", "png")


def test_to_png_is_palette():
    data = encoders.to_png(make_logo(), 90, 0)
    assert data.startswith(b"\x89PNG")
    with Image.open(io.BytesIO(data)) as im:
        assert im.mode == "P"
        assert im.size == (144, 144)


@pytest.mark.parametrize("quality", [0, 100, 255])
def test_to_png_best_effort_at_extremes(quality):
    assert encoders.to_png(make_logo(), quality, 0).startswith(b"\x89PNG")


def test_to_webp_lossless_at_100():
    src = make_noise(64)
    data = encoders.to_webp(src, 100, 0)
    decoded = encoders.decode(data, "webp")
    assert np.array_equal(np.asarray(decoded), np.asarray(src))


def test_to_webp_lossy_is_smaller():
    src = make_noise(64)
    assert len(encoders.to_webp(src, 50, 0)) < len(encoders.to_webp(src, 100, 0))


def test_to_jpeg_drops_alpha_and_honors_quality():
    src = make_noise()
    low = encoders.to_jpeg(src, 10, 0)
    high = encoders.to_jpeg(src, 95, 0)
    assert low.startswith(b"\xff\xd8")
    assert len(low) < len(high)
    with Image.open(io.BytesIO(low)) as im:
        assert im.mode == "RGB"


@pytest.mark.skipif(not HAVE_AVIF, reason="Pillow built without AVIF")
def test_to_avif_round_trip_size():
    data = encoders.to_avif(make_logo(), 70, 0)
    assert encoders.decode(data, "avif").size == (144, 144)


def test_to_gif_keeps_frames_and_loops(gif_bytes):
    data = encoders.to_gif(gif_bytes, 10)
    with Image.open(io.BytesIO(data)) as im:
        assert im.format == "GIF"
        assert im.n_frames == 3
        assert im.info.get("loop") == 0


def test_to_gif_rejects_garbage():
    with pytest.raises(CodecError) as exc:
        encoders.to_gif(b"garbage", 10)
    assert exc.value.category == "gif_decode"
    assert "category:gif_decode" in str(exc.value)


@pytest.mark.parametrize("target", ["", "bmp", "tiff", "nope"])
def test_encode_falls_back_to_jpeg(target):
    data, fmt = encoders.encode(make_logo(), target, 80, 3)
    assert fmt == "jpeg"
    assert data.startswith(b"\xff\xd8")


def test_encode_dispatches_by_format():
    data, fmt = encoders.encode(make_logo(), "webp", 80, 3)
    assert fmt == "webp"
    assert data[8:12] == b"WEBP"


def test_save_as_unknown_format_uses_jpeg():
    assert encoders.save_as(make_logo(), "").startswith(b"\xff\xd8")
    assert encoders.save_as(make_logo(), "png").startswith(b"\x89PNG")


def test_encode_gif_uses_source_buffer(logo_png):
    data, fmt = encoders.encode(make_logo(), "gif", 80, 10, buffer=logo_png)
    assert fmt == "gif"
    assert data.startswith(b"GIF8")


def _gradient(width: int = 64, height: int = 16) -> Image.Image:
    row = np.linspace(0, 255, width).astype(np.uint8)
    arr = np.repeat(np.tile(row, (height, 1))[..., None], 3, axis=2)
    return Image.fromarray(arr, mode="RGB").convert("RGBA")


def test_to_png_dithers_opaque_images():
    src = _gradient()
    data = encoders.to_png(src, 5, 0)
    with Image.open(io.BytesIO(data)) as im:
        assert im.mode == "P"
        arr = np.asarray(im.convert("RGB"))
    # a nearest-color remap of a horizontal gradient repeats one row; error diffusion does not
    assert not np.array_equal(arr, np.broadcast_to(arr[:1], arr.shape))

    rgb = src.convert("RGB")
    palette = rgb.quantize(colors=encoders._png_colors(5), method=encoders._quantize_method())
    plain = np.asarray(rgb.quantize(palette=palette, dither=Image.Dither.NONE).convert("RGB"))
    assert np.array_equal(plain, np.broadcast_to(plain[:1], plain.shape))
    assert not np.array_equal(arr, plain)


def test_to_png_keeps_transparency():
    data = encoders.to_png(make_logo(), 90, 0)
    decoded = encoders.decode(data, "png")
    alpha = np.asarray(decoded)[..., 3]
    assert alpha[0, 0] == 0
    assert alpha[72, 72] == 255
