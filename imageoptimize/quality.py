"""
Perceptual difference scoring for imageoptimize.

Structural dissimilarity between the originally loaded pixels and the final
pixels, built on scikit-image's SSIM.
"""

from typing import Optional

import numpy as np
from PIL import Image
from skimage.metrics import structural_similarity as ssim

# Sentinel for "diff not computable"
DIFF_UNAVAILABLE = -1.0
DIFF_SCALE = 1000.0
SSIM_WIN_SIZE = 7
# Lower bound keeps 1/ssim finite for pathological inputs
SSIM_FLOOR = 1e-6


def _win_size(height: int, width: int) -> Optional[int]:
    """Largest odd SSIM window (<= 7) that fits the image, or None if it's too small."""
    side = min(height, width, SSIM_WIN_SIZE)
    if side % 2 == 0:
        side -= 1
    return side if side >= 3 else None


def dssim(original: np.ndarray, current: np.ndarray) -> float:
    """
    Structural dissimilarity of two equally sized uint8 RGBA arrays.

    0 means identical; grows as the images diverge. Computed as 1/SSIM - 1.

    Args:
        original: uint8 array (H, W, 4)
        current: uint8 array (H, W, 4)

    Returns:
        Dissimilarity (float), or DIFF_UNAVAILABLE if the image is too small to window
    """
    h, w = original.shape[:2]
    win = _win_size(h, w)
    if win is None:
        return DIFF_UNAVAILABLE
    val = ssim(original, current, data_range=255, channel_axis=2, win_size=win)
    return 1.0 / max(float(val), SSIM_FLOOR) - 1.0


def perceptual_diff(original: Optional[Image.Image], current: Optional[Image.Image],
                    supported: bool = True) -> float:
    """
    Score the current pixels against the original snapshot, scaled x1000.

    Returns DIFF_UNAVAILABLE when there is no snapshot, the format does not
    support comparison (GIF), or the two images differ in width/height.
    """
    if original is None or current is None or not supported:
        return DIFF_UNAVAILABLE
    if original.size != current.size:
        return DIFF_UNAVAILABLE
    a = np.asarray(original.convert("RGBA"), dtype=np.uint8)
    b = np.asarray(current.convert("RGBA"), dtype=np.uint8)
    value = dssim(a, b)
    if value == DIFF_UNAVAILABLE:
        return value
    return value * DIFF_SCALE
