"""
模型衍生产物回归测试框架

把模型转换服务生成的衍生产物提取到本地，与远程存储中的基线快照比对，
也可以把当前产物上传为新的基线
"""

__version__ = "1.0.0"

from .errors import RegressionError, ComparisonError, TransportError
from .config import Config
from .baseline import SnapshotStore, AwsCliTransport, LocalTransport, create_store
from .extractor import Extractor, ExtractionResult, ExtractionStatus
from .svf import SvfReader, SceneFragment, PackFileReader
from .comparators import (
    Difference,
    DifferenceKind,
    diff_values,
    compare_objects,
    reconcile,
    compare_folders,
    compare_properties,
    compare_ordered,
    compare_fragments,
    compare_materials,
    compare_geometries,
    compare_images,
    compare_textures,
)
from .runner import RegressionRunner, RunResult

__all__ = [
    # Errors
    "RegressionError",
    "ComparisonError",
    "TransportError",
    # Config
    "Config",
    # Baseline
    "SnapshotStore",
    "AwsCliTransport",
    "LocalTransport",
    "create_store",
    # Extractor
    "Extractor",
    "ExtractionResult",
    "ExtractionStatus",
    # Reader
    "SvfReader",
    "SceneFragment",
    "PackFileReader",
    # Comparators
    "Difference",
    "DifferenceKind",
    "diff_values",
    "compare_objects",
    "reconcile",
    "compare_folders",
    "compare_properties",
    "compare_ordered",
    "compare_fragments",
    "compare_materials",
    "compare_geometries",
    "compare_images",
    "compare_textures",
    # Runner
    "RegressionRunner",
    "RunResult",
]
