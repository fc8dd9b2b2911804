"""
imageoptimize - multi-format image optimization pipeline.

Runs ordered operation descriptors (load, resize, crop, gray, watermark,
optim, diff) over one image and yields the encoded buffer plus a perceptual
difference score. A batch layer fans the pipeline out over directory trees.
"""

__version__ = "0.1.5"

# Core functionality
from .pipeline import run, run_sync, process_one, process_tree
from .images import ProcessImage
from .image_io import load_image, resolve_data
from .image_processing import (
    CropProcess,
    GrayProcess,
    LoaderProcess,
    OptimProcess,
    ResizeProcess,
    WatermarkPosition,
    WatermarkProcess,
    should_replace_buffer,
)
from .quality import perceptual_diff, DIFF_UNAVAILABLE
from .errors import (
    ImageProcessingError,
    ParamsInvalid,
    FetchError,
    FileReadError,
    Base64DecodeError,
    ImageDecodeError,
    CodecError,
)

__all__ = [
    # Version
    "__version__",
    # Pipeline
    "run",
    "run_sync",
    "process_one",
    "process_tree",
    # Image value
    "ProcessImage",
    # Image I/O
    "load_image",
    "resolve_data",
    # Operations
    "CropProcess",
    "GrayProcess",
    "LoaderProcess",
    "OptimProcess",
    "ResizeProcess",
    "WatermarkPosition",
    "WatermarkProcess",
    "should_replace_buffer",
    # Quality
    "perceptual_diff",
    "DIFF_UNAVAILABLE",
    # Errors
    "ImageProcessingError",
    "ParamsInvalid",
    "FetchError",
    "FileReadError",
    "Base64DecodeError",
    "ImageDecodeError",
    "CodecError",
]
