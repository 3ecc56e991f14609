"""
比对器模块初始化
"""

from .structural import Difference, DifferenceKind, diff_values, compare_objects
from .folders import reconcile, compare_folders
from .propdb import PROPERTY_DB_FILES, compare_properties
from .records import compare_ordered, compare_fragments, compare_materials, compare_geometries
from .images import compare_images, compare_textures, count_mismatched_pixels

__all__ = [
    "Difference",
    "DifferenceKind",
    "diff_values",
    "compare_objects",
    "reconcile",
    "compare_folders",
    "PROPERTY_DB_FILES",
    "compare_properties",
    "compare_ordered",
    "compare_fragments",
    "compare_materials",
    "compare_geometries",
    "compare_images",
    "compare_textures",
    "count_mismatched_pixels",
]
