"""
结构化数据比对模块

递归比较任意嵌套的JSON数据（标量、列表、字典），输出带路径的差异项
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Tuple, Union

from ..errors import ComparisonError


class DifferenceKind(Enum):
    """差异类型"""
    ADDED = "added"
    REMOVED = "removed"
    SIZE_MISMATCH = "size-mismatch"
    TYPE_MISMATCH = "type-mismatch"
    VALUE_MISMATCH = "value-mismatch"
    COUNT_MISMATCH = "count-mismatch"
    DIMENSION_MISMATCH = "dimension-mismatch"
    PIXEL_MISMATCH = "pixel-mismatch"


@dataclass
class Difference:
    """差异项"""
    kind: DifferenceKind
    path: str
    message: str
    value1: Any = None
    value2: Any = None

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.path}: {self.message}"


PathElement = Union[str, int]


def value_tag(value: Any) -> str:
    """返回数据的类型标签（null/boolean/number/string/sequence/map）"""
    if value is None:
        return "null"
    # bool是int的子类，必须先判断
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "sequence"
    if isinstance(value, dict):
        return "map"
    raise TypeError(f"不支持的数据类型: {type(value).__name__}")


def format_path(path: Tuple[PathElement, ...]) -> str:
    """把路径元组格式化为 a.b[0].c 形式"""
    if not path:
        return "<root>"

    text = ""
    for i, element in enumerate(path):
        if isinstance(element, int):
            text += f"[{element}]"
        elif i == 0:
            text = str(element)
        else:
            text += f".{element}"
    return text


def diff_values(a: Any, b: Any, path: Tuple[PathElement, ...] = ()) -> List[Difference]:
    """
    递归比较两个结构化数据

    Args:
        a: 基线数据
        b: 当前数据
        path: 当前位置的路径

    Returns:
        List[Difference]: 差异列表，为空表示完全一致
    """
    tag_a = value_tag(a)
    tag_b = value_tag(b)

    if tag_a != tag_b:
        return [Difference(
            kind=DifferenceKind.TYPE_MISMATCH,
            path=format_path(path),
            message=f"类型不同 ({tag_a} vs {tag_b})",
            value1=a,
            value2=b
        )]

    if tag_a == "map":
        return _diff_maps(a, b, path)
    if tag_a == "sequence":
        return _diff_sequences(a, b, path)

    if a != b:
        return [Difference(
            kind=DifferenceKind.VALUE_MISMATCH,
            path=format_path(path),
            message=f"值不同 ({a!r} vs {b!r})",
            value1=a,
            value2=b
        )]
    return []


def _diff_maps(a: dict, b: dict, path: Tuple[PathElement, ...]) -> List[Difference]:
    """比较两个字典，忽略键顺序"""
    differences = []
    keys_a = set(a.keys())
    keys_b = set(b.keys())

    for key in sorted(keys_a - keys_b, key=str):
        differences.append(Difference(
            kind=DifferenceKind.REMOVED,
            path=format_path(path + (key,)),
            message="基线存在，当前不存在",
            value1=a[key]
        ))

    for key in sorted(keys_b - keys_a, key=str):
        differences.append(Difference(
            kind=DifferenceKind.ADDED,
            path=format_path(path + (key,)),
            message="当前存在，基线不存在",
            value2=b[key]
        ))

    for key in sorted(keys_a & keys_b, key=str):
        differences.extend(diff_values(a[key], b[key], path + (key,)))

    return differences


def _diff_sequences(a, b, path: Tuple[PathElement, ...]) -> List[Difference]:
    """按索引比较两个列表"""
    differences = []

    if len(a) != len(b):
        differences.append(Difference(
            kind=DifferenceKind.COUNT_MISMATCH,
            path=format_path(path),
            message=f"列表长度不同 ({len(a)} vs {len(b)})",
            value1=len(a),
            value2=len(b)
        ))

    for i in range(min(len(a), len(b))):
        differences.extend(diff_values(a[i], b[i], path + (i,)))

    return differences


def describe_differences(differences: List[Difference]) -> str:
    """把差异列表格式化为多行文本，每个差异一行"""
    return "\n".join(str(diff) for diff in differences)


def compare_objects(baseline: Any, current: Any) -> None:
    """
    比较两个结构化数据，不一致时抛出ComparisonError

    Raises:
        ComparisonError: 存在任何差异
    """
    differences = diff_values(baseline, current)
    if differences:
        raise ComparisonError(
            "Compared objects not equal:\n" + describe_differences(differences),
            differences
        )
