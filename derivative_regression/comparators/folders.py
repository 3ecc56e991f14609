"""
目录结构比对模块

按条目名称递归比较基线目录与当前目录。文件只比较大小，不比较内容
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..errors import ComparisonError, TransportError
from .structural import Difference, DifferenceKind, describe_differences


@dataclass
class DirectoryEntry:
    """目录条目"""
    name: str
    is_dir: bool
    size: int


def scan_directory(directory: Union[str, Path]) -> Dict[str, DirectoryEntry]:
    """
    列出目录当前层级的所有条目

    Raises:
        TransportError: 目录不存在、不是目录或无法读取
    """
    entries = {}
    try:
        with os.scandir(directory) as it:
            for entry in it:
                is_dir = entry.is_dir()
                entries[entry.name] = DirectoryEntry(
                    name=entry.name,
                    is_dir=is_dir,
                    size=0 if is_dir else entry.stat().st_size
                )
    except OSError as e:
        raise TransportError(f"无法读取目录 {directory}: {e}") from e
    return entries


def reconcile(baseline_dir: Union[str, Path], current_dir: Union[str, Path], prefix: str = "") -> List[Difference]:
    """
    递归比较两个目录树

    Args:
        baseline_dir: 基线目录
        current_dir: 当前目录
        prefix: 当前层级相对于根目录的路径

    Returns:
        List[Difference]: 所有层级的差异
    """
    baseline_entries = scan_directory(baseline_dir)
    current_entries = scan_directory(current_dir)

    differences = []
    for name in sorted(set(baseline_entries) | set(current_entries)):
        a: Optional[DirectoryEntry] = baseline_entries.get(name)
        b: Optional[DirectoryEntry] = current_entries.get(name)
        rel_path = f"{prefix}{name}"

        if a is None:
            differences.append(Difference(
                kind=DifferenceKind.ADDED,
                path=rel_path,
                message=f"Entry {rel_path} added"
            ))
        elif b is None:
            differences.append(Difference(
                kind=DifferenceKind.REMOVED,
                path=rel_path,
                message=f"Entry {rel_path} removed"
            ))
        elif a.is_dir and b.is_dir:
            differences.extend(reconcile(
                Path(baseline_dir) / name,
                Path(current_dir) / name,
                prefix=f"{rel_path}/"
            ))
        elif not a.is_dir and not b.is_dir:
            if a.size != b.size:
                differences.append(Difference(
                    kind=DifferenceKind.SIZE_MISMATCH,
                    path=rel_path,
                    message=f"Entries {rel_path} are of different size ({a.size} vs {b.size})",
                    value1=a.size,
                    value2=b.size
                ))
        else:
            differences.append(Difference(
                kind=DifferenceKind.TYPE_MISMATCH,
                path=rel_path,
                message=f"Entries {rel_path} are of different type",
                value1="directory" if a.is_dir else "file",
                value2="directory" if b.is_dir else "file"
            ))

    return differences


def compare_folders(baseline_dir: Union[str, Path], current_dir: Union[str, Path]) -> None:
    """
    比较两个目录树，汇总全部差异后一次性报告

    Raises:
        ComparisonError: 存在任何差异
    """
    differences = reconcile(baseline_dir, current_dir)
    if differences:
        raise ComparisonError(
            "Compared folder structures not equal:\n" + describe_differences(differences),
            differences
        )
