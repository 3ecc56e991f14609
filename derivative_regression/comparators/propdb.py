"""
属性数据库比对模块

属性数据库由五个固定名称的gzip压缩JSON表组成，按固定顺序逐表比较，
遇到第一个不一致的表立即失败
"""

from pathlib import Path
from typing import Union

from ..errors import ComparisonError
from ..svf import load_gzip_json
from .structural import diff_values, describe_differences


PROPERTY_DB_FILES = (
    "objects_attrs.json.gz",
    "objects_avs.json.gz",
    "objects_ids.json.gz",
    "objects_offs.json.gz",
    "objects_vals.json.gz",
)


def compare_properties(baseline_dir: Union[str, Path], current_dir: Union[str, Path]) -> None:
    """
    比较两个目录中的属性数据库

    Args:
        baseline_dir: 基线属性数据库所在目录
        current_dir: 当前属性数据库所在目录

    Raises:
        ComparisonError: 某个表存在差异（其后的表不再比较）
        TransportError: 表文件缺失或无法解码
    """
    for filename in PROPERTY_DB_FILES:
        baseline_table = load_gzip_json(Path(baseline_dir) / filename)
        current_table = load_gzip_json(Path(current_dir) / filename)

        differences = diff_values(baseline_table, current_table)
        if differences:
            raise ComparisonError(
                f"Property database table {filename} not equal:\n" + describe_differences(differences),
                differences
            )
