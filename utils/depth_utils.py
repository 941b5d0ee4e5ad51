"""
Depth and color conversions applied before frames are written or shown.
"""
import cv2
import numpy as np

Z16_MAX = 65535.0


def depth_to_8bit(depth: np.ndarray, depth_max: float = Z16_MAX) -> np.ndarray:
    """
    Linear rescale of a single channel depth image into 0..255.

    depth_max maps to 255, larger values saturate. The mapping is lossy and
    meant for human viewing only.
    """
    if depth_max <= 0:
        raise ValueError(f"depth_max must be positive, got {depth_max}")
    if depth.ndim != 2:
        raise ValueError(f"depth must be single channel, got shape {depth.shape}")
    return cv2.convertScaleAbs(depth, alpha=255.0 / depth_max)


def depth_to_uint16(depth: np.ndarray) -> np.ndarray:
    """Native depth as 16-bit millimetres, for lossless PNG output."""
    if depth.dtype == np.uint16:
        return depth
    clean = np.nan_to_num(depth.astype(np.float32), nan=0.0, posinf=Z16_MAX, neginf=0.0)
    return np.clip(np.rint(clean), 0, Z16_MAX).astype(np.uint16)


def color_to_bgr(color: np.ndarray) -> np.ndarray:
    """BGRX/BGRA and grayscale images to 3 channel BGR."""
    if color.ndim == 2:
        return cv2.cvtColor(color, cv2.COLOR_GRAY2BGR)
    if color.ndim == 3 and color.shape[2] == 4:
        return cv2.cvtColor(color, cv2.COLOR_BGRA2BGR)
    if color.ndim == 3 and color.shape[2] == 3:
        return color
    raise ValueError(f"unsupported color image shape {color.shape}")
