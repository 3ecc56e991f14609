"""
有序记录比对模块

用于场景片段、材质和几何元数据列表。先比较数量，再按索引逐项比较，
遇到第一个不一致的索引立即失败
"""

from typing import Any, Callable, List, Sequence

from ..errors import ComparisonError
from .structural import Difference, DifferenceKind, diff_values, describe_differences


FRAGMENT_FIELDS = ("instance_id", "geometry_id", "material_id")


def compare_ordered(
    baseline: Sequence,
    current: Sequence,
    compare_item: Callable[[Any, Any], List[Difference]],
    label: str
) -> None:
    """
    按索引比较两个有序列表

    Args:
        baseline: 基线列表
        current: 当前列表
        compare_item: 单项比较函数，返回差异列表
        label: 记录类型名称，用于错误信息

    Raises:
        ComparisonError: 数量不同，或第一个存在差异的索引
    """
    if len(baseline) != len(current):
        raise ComparisonError(
            f"{label} count not equal: {len(baseline)} vs {len(current)}",
            [Difference(
                kind=DifferenceKind.COUNT_MISMATCH,
                path=label,
                message="数量不同",
                value1=len(baseline),
                value2=len(current)
            )]
        )

    for index, (a, b) in enumerate(zip(baseline, current)):
        differences = compare_item(a, b)
        if differences:
            raise ComparisonError(
                f"{label} {index} not equal:\n" + describe_differences(differences),
                differences
            )


def _diff_fragment(a, b) -> List[Difference]:
    """只比较片段的三个标识字段"""
    differences = []
    for field_name in FRAGMENT_FIELDS:
        value1 = getattr(a, field_name)
        value2 = getattr(b, field_name)
        if value1 != value2:
            differences.append(Difference(
                kind=DifferenceKind.VALUE_MISMATCH,
                path=field_name,
                message=f"值不同 ({value1} vs {value2})",
                value1=value1,
                value2=value2
            ))
    return differences


def compare_fragments(baseline: Sequence, current: Sequence) -> None:
    """比较场景片段列表"""
    compare_ordered(baseline, current, _diff_fragment, "Fragment")


def compare_materials(baseline: Sequence, current: Sequence) -> None:
    """比较材质列表"""
    compare_ordered(baseline, current, diff_values, "Material")


def compare_geometries(baseline: Sequence, current: Sequence) -> None:
    """比较几何元数据列表"""
    compare_ordered(baseline, current, diff_values, "Geometry")
