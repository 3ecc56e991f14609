"""
回归测试运行器模块

负责按顺序执行: 下载基线 -> 提取当前产物 -> 比对；或在更新模式下提取后上传为新基线。
任何一步失败都会立即中止，不做重试
"""

import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from .baseline import SnapshotStore
from .comparators.folders import compare_folders
from .comparators.images import compare_textures
from .comparators.propdb import PROPERTY_DB_FILES, compare_properties
from .comparators.records import compare_fragments, compare_geometries, compare_materials
from .config import Config
from .errors import TransportError
from .extractor import Extractor
from .svf import SvfReader


@dataclass
class RunResult:
    """运行结果数据类"""
    test_name: str
    baseline_dir: Optional[Path]
    current_dir: Path
    duration_ms: int
    baseline_updated: bool = False


def find_dirs_containing(root: Path, filename: str) -> List[Path]:
    """查找包含指定文件的所有目录（相对于root，已排序）"""
    return sorted(path.parent.relative_to(root) for path in Path(root).rglob(filename) if path.is_file())


def _reset_dir(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)


class RegressionRunner:
    """回归测试运行器"""

    def __init__(self, config: Config, store: SnapshotStore, extractor: Extractor):
        """
        初始化运行器

        Args:
            config: 配置对象
            store: 基线存储
            extractor: 产物提取器
        """
        self.config = config
        self.store = store
        self.extractor = extractor

    def test_name_for(self, bucket_key: str, object_key: str) -> str:
        """获取测试名"""
        return f"{self.config.test_prefix}/{bucket_key}/{object_key}"

    def scratch_dirs(self, test_name: str) -> Tuple[Path, Path]:
        """获取基线和当前产物的本地目录"""
        test_dir = Path(self.config.work_dir) / test_name
        return test_dir / "baseline", test_dir / "current"

    def run(
        self,
        bucket_key: str,
        object_key: str,
        update_baseline: bool = False,
        verbose: bool = False
    ) -> RunResult:
        """
        运行单个回归测试

        Args:
            bucket_key: 源模型所在的存储桶
            object_key: 源模型的对象名
            update_baseline: 为True时提取后直接上传为新基线，不做比对
            verbose: 是否显示详细信息

        Returns:
            RunResult: 运行结果

        Raises:
            ComparisonError: 当前产物与基线不一致
            TransportError: 基线存取或产物提取失败
        """
        start_time = time.time()
        test_name = self.test_name_for(bucket_key, object_key)
        baseline_dir, current_dir = self.scratch_dirs(test_name)

        if not update_baseline:
            _reset_dir(baseline_dir)
            if verbose:
                print(f"[INFO] 下载基线: {test_name}")
            self.store.download(test_name, baseline_dir)

        _reset_dir(current_dir)
        if verbose:
            print("[INFO] 提取衍生产物...")
        self._extract(bucket_key, object_key, current_dir, verbose)

        if update_baseline:
            if verbose:
                print(f"[INFO] 更新基线: {test_name}")
            self.store.upload(test_name, current_dir)
            return RunResult(
                test_name=test_name,
                baseline_dir=None,
                current_dir=current_dir,
                duration_ms=int((time.time() - start_time) * 1000),
                baseline_updated=True
            )

        if verbose:
            print("[INFO] 比对衍生产物与基线...")
        self.compare_snapshots(baseline_dir, current_dir, verbose=verbose)

        return RunResult(
            test_name=test_name,
            baseline_dir=baseline_dir,
            current_dir=current_dir,
            duration_ms=int((time.time() - start_time) * 1000)
        )

    def _extract(self, bucket_key: str, object_key: str, output_dir: Path, verbose: bool) -> None:
        result = self.extractor.extract(
            bucket_key,
            object_key,
            output_dir,
            timeout=self.config.extract_timeout,
            verbose=verbose
        )
        if not result.success:
            raise TransportError(result.error_message or "提取失败")
        if verbose:
            print(f"[INFO] 提取完成 (耗时: {result.duration_ms/1000:.1f}s)")

    def compare_snapshots(self, baseline_dir: Path, current_dir: Path, verbose: bool = False) -> None:
        """
        比对两个快照目录，遇到第一个错误立即中止

        顺序: 目录结构 -> 属性数据库 -> 每个视图的片段、材质、几何元数据和纹理
        """
        baseline_dir = Path(baseline_dir)
        current_dir = Path(current_dir)

        compare_folders(baseline_dir, current_dir)

        for rel_dir in find_dirs_containing(current_dir, PROPERTY_DB_FILES[0]):
            if verbose:
                print(f"[INFO] 比对属性数据库: {rel_dir.as_posix()}")
            compare_properties(baseline_dir / rel_dir, current_dir / rel_dir)

        for rel_dir in find_dirs_containing(current_dir, self.config.package_name):
            if verbose:
                print(f"[INFO] 比对视图: {rel_dir.as_posix()}")
            baseline_viewable = baseline_dir / rel_dir
            current_viewable = current_dir / rel_dir
            baseline_reader = SvfReader(baseline_viewable, self.config.package_name)
            current_reader = SvfReader(current_viewable, self.config.package_name)

            compare_fragments(baseline_reader.read_fragments(), current_reader.read_fragments())
            compare_materials(baseline_reader.read_materials(), current_reader.read_materials())
            compare_geometries(baseline_reader.read_geometries(), current_reader.read_geometries())
            compare_textures(
                baseline_reader,
                baseline_viewable,
                current_reader,
                current_viewable,
                self.config.image_threshold
            )
