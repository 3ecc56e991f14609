"""
图像相似度比对模块

先比较尺寸，再逐像素计算YIQ色差（半透明像素先与白色背景混合），
超过阈值的像素计为不一致。纹理集比对先比较图像URI列表，再逐个比较图像
"""

from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..errors import ComparisonError, TransportError
from .structural import Difference, DifferenceKind, diff_values, describe_differences


DEFAULT_THRESHOLD = 0.1

# YIQ色差的最大可能值（纯黑与纯白之间）
MAX_YIQ_DELTA = 35215.0


def load_image(path: Union[str, Path]) -> np.ndarray:
    """
    加载图像为 (H, W, 4) 的 uint8 RGBA 数组

    Raises:
        TransportError: 文件不存在或无法解码
    """
    try:
        with Image.open(path) as img:
            return np.asarray(img.convert("RGBA"), dtype=np.uint8)
    except (OSError, UnidentifiedImageError) as e:
        raise TransportError(f"无法加载图像 {path}: {e}") from e


def _blend_with_white(rgba: np.ndarray) -> np.ndarray:
    """把半透明像素混合到白色背景上，返回 (H, W, 3) float64"""
    rgb = rgba[..., :3].astype(np.float64)
    alpha = rgba[..., 3:4].astype(np.float64) / 255.0
    return 255.0 + (rgb - 255.0) * alpha


def _yiq(rgb: np.ndarray):
    r = rgb[..., 0]
    g = rgb[..., 1]
    b = rgb[..., 2]
    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return y, i, q


def color_delta(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    计算两个RGBA图像每个像素的YIQ色差

    Args:
        a: (H, W, 4) uint8
        b: (H, W, 4) uint8

    Returns:
        np.ndarray: (H, W) float64，完全相同的像素为0
    """
    y1, i1, q1 = _yiq(_blend_with_white(a))
    y2, i2, q2 = _yiq(_blend_with_white(b))
    delta = 0.5053 * (y1 - y2) ** 2 + 0.299 * (i1 - i2) ** 2 + 0.1957 * (q1 - q2) ** 2

    identical = np.all(a == b, axis=-1)
    delta[identical] = 0.0
    return delta


def count_mismatched_pixels(a: np.ndarray, b: np.ndarray, threshold: float = DEFAULT_THRESHOLD) -> int:
    """
    统计色差超过阈值的像素数量

    Args:
        a: (H, W, 4) uint8 RGBA
        b: (H, W, 4) uint8 RGBA，尺寸必须与a相同
        threshold: 阈值，范围[0, 1]，越小越严格

    Returns:
        int: 不一致的像素数量
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"阈值必须在[0, 1]范围内: {threshold}")
    if a.shape != b.shape:
        raise ValueError(f"图像尺寸不同: {a.shape} vs {b.shape}")

    max_delta = MAX_YIQ_DELTA * threshold * threshold
    return int(np.count_nonzero(color_delta(a, b) > max_delta))


def compare_images(path_a: Union[str, Path], path_b: Union[str, Path], threshold: float = DEFAULT_THRESHOLD) -> None:
    """
    比较两张图像

    Args:
        path_a: 基线图像路径
        path_b: 当前图像路径
        threshold: 阈值，范围[0, 1]，越小越严格

    Raises:
        ComparisonError: 尺寸不同或存在不一致的像素
        TransportError: 图像无法加载
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"阈值必须在[0, 1]范围内: {threshold}")

    a = load_image(path_a)
    b = load_image(path_b)

    height_a, width_a = a.shape[:2]
    height_b, width_b = b.shape[:2]
    if (width_a, height_a) != (width_b, height_b):
        raise ComparisonError(
            f"Image dimensions do not match: {path_a} ({width_a}x{height_a} vs {width_b}x{height_b})",
            [Difference(
                kind=DifferenceKind.DIMENSION_MISMATCH,
                path=str(path_a),
                message="图像尺寸不同",
                value1=(width_a, height_a),
                value2=(width_b, height_b)
            )]
        )

    mismatched = count_mismatched_pixels(a, b, threshold)
    if mismatched > 0:
        raise ComparisonError(
            f"Found {mismatched} mismatched pixels: {path_a}",
            [Difference(
                kind=DifferenceKind.PIXEL_MISMATCH,
                path=str(path_a),
                message=f"{mismatched} 个像素不一致",
                value1=mismatched
            )]
        )


def compare_textures(reader_a, dir_a: Union[str, Path], reader_b, dir_b: Union[str, Path], threshold: float = DEFAULT_THRESHOLD) -> None:
    """
    比较两个视图引用的纹理集

    Args:
        reader_a: 基线视图读取器（提供list_images()）
        dir_a: 基线视图目录
        reader_b: 当前视图读取器
        dir_b: 当前视图目录
        threshold: 图像比较阈值

    Raises:
        ComparisonError: 图像URI列表不同，或第一张不一致的图像
    """
    images_a = reader_a.list_images()
    images_b = reader_b.list_images()

    differences = diff_values(images_a, images_b)
    if differences:
        raise ComparisonError(
            "Texture lists not equal:\n" + describe_differences(differences),
            differences
        )

    for uri in images_a:
        compare_images(Path(dir_a) / uri, Path(dir_b) / uri, threshold)
