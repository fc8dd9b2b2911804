"""Shared fixtures: synthetic images built with Pillow/numpy."""

import base64
import io

import numpy as np
import pytest
from PIL import Image, ImageDraw

from imageoptimize.images import ProcessImage


def encode(img: Image.Image, fmt: str, **kwargs) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def make_logo(size: int = 144) -> Image.Image:
    """Transparent square with an opaque ring and bar, a stand-in for a small logo."""
    img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.ellipse((8, 8, size - 8, size - 8), outline=(222, 165, 132, 255), width=12)
    draw.rectangle((size // 3, size // 3, 2 * size // 3, 2 * size // 3), fill=(40, 40, 40, 255))
    return img


def make_noise(size: int = 144, seed: int = 7) -> Image.Image:
    rng = np.random.default_rng(seed)
    arr = rng.integers(0, 256, (size, size, 3), dtype=np.uint8)
    return Image.fromarray(arr, mode="RGB").convert("RGBA")


def make_gif(size: int = 32) -> bytes:
    frames = [Image.new("RGB", (size, size), c) for c in ((255, 0, 0), (0, 0, 255), (0, 255, 0))]
    return encode(frames[0], "GIF", save_all=True, append_images=frames[1:], duration=100, loop=0)


@pytest.fixture
def logo_png() -> bytes:
    return encode(make_logo(), "PNG")


@pytest.fixture
def noise_png() -> bytes:
    return encode(make_noise(), "PNG")


@pytest.fixture
def noise_jpeg_low() -> bytes:
    return encode(make_noise().convert("RGB"), "JPEG", quality=10)


@pytest.fixture
def gif_bytes() -> bytes:
    return make_gif()


@pytest.fixture
def logo_image(logo_png) -> ProcessImage:
    return ProcessImage.new(logo_png, "png")


@pytest.fixture
def logo_file(tmp_path, logo_png):
    path = tmp_path / "logo.png"
    path.write_bytes(logo_png)
    return path
