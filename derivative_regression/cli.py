"""
命令行接口模块

提供命令行参数解析和子命令处理
"""

import argparse
import sys
from pathlib import Path

from . import __version__
from .baseline import create_store
from .comparators.images import compare_images
from .config import Config
from .errors import ComparisonError, TransportError
from .extractor import Extractor
from .runner import RegressionRunner


EXIT_OK = 0
EXIT_DIFFERENT = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    """构建参数解析器"""
    parser = argparse.ArgumentParser(
        description="模型衍生产物回归测试工具",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  # 与基线比对
  derivative-regression run my-bucket model.rvt --verbose

  # 用当前产物更新基线
  derivative-regression run my-bucket model.rvt --update-baseline

  # 比对两个本地快照目录
  derivative-regression compare ./baseline ./current

  # 比对两张图像
  derivative-regression compare-images a.png b.png --threshold 0.05
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"derivative-regression {__version__}"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="配置文件路径（默认: ./regression_config.json）"
    )

    subparsers = parser.add_subparsers(dest="command", help="可用命令")

    # run子命令
    run_parser = subparsers.add_parser("run", help="提取衍生产物并与基线比对")
    run_parser.add_argument("bucket", help="源模型所在的存储桶")
    run_parser.add_argument("object", help="源模型的对象名")
    run_parser.add_argument(
        "--update-baseline",
        action="store_true",
        help="提取后上传为新基线（不做比对）"
    )
    run_parser.add_argument(
        "--verbose",
        action="store_true",
        help="显示详细信息"
    )

    # compare子命令
    compare_parser = subparsers.add_parser("compare", help="比对两个本地快照目录")
    compare_parser.add_argument("baseline", help="基线目录")
    compare_parser.add_argument("current", help="当前目录")
    compare_parser.add_argument(
        "--threshold",
        type=float,
        help="图像比较阈值（默认取配置，0.1）"
    )
    compare_parser.add_argument(
        "--verbose",
        action="store_true",
        help="显示详细信息"
    )

    # compare-images子命令
    images_parser = subparsers.add_parser("compare-images", help="比对两张图像")
    images_parser.add_argument("image1", help="基线图像")
    images_parser.add_argument("image2", help="当前图像")
    images_parser.add_argument(
        "--threshold",
        type=float,
        default=0.1,
        help="阈值，范围[0, 1]，越小越严格（默认: 0.1）"
    )

    # download子命令
    download_parser = subparsers.add_parser("download", help="下载基线")
    download_parser.add_argument("test_name", help="测试名")
    download_parser.add_argument("dest", help="解压目录")

    # upload子命令
    upload_parser = subparsers.add_parser("upload", help="上传基线（覆盖已有基线）")
    upload_parser.add_argument("test_name", help="测试名")
    upload_parser.add_argument("src", help="要上传的目录")

    return parser


def main(argv=None) -> int:
    """主入口函数"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_ERROR

    handlers = {
        "run": cmd_run,
        "compare": cmd_compare,
        "compare-images": cmd_compare_images,
        "download": cmd_download,
        "upload": cmd_upload,
    }

    try:
        return handlers[args.command](args)
    except ComparisonError as e:
        print(f"[FAILED] {e.description}")
        return EXIT_DIFFERENT
    except TransportError as e:
        print(f"[ERROR] {e.description}", file=sys.stderr)
        return EXIT_ERROR
    except (ValueError, FileNotFoundError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return EXIT_ERROR


def _load_config(args, storage: bool, extraction: bool) -> Config:
    """加载配置并检查必要的环境变量"""
    config = Config(Path(args.config) if args.config else None).load()

    missing = config.missing_settings(storage=storage, extraction=extraction)
    if missing:
        raise ValueError(f"缺少环境变量: {', '.join(missing)}")
    return config


def cmd_run(args) -> int:
    """执行run命令"""
    config = _load_config(args, storage=True, extraction=True)

    runner = RegressionRunner(
        config,
        create_store(config),
        Extractor(config.extractor, env=config.extractor_env())
    )

    test_name = runner.test_name_for(args.bucket, args.object)
    print(f"[INFO] 测试: {test_name}")

    result = runner.run(
        args.bucket,
        args.object,
        update_baseline=args.update_baseline,
        verbose=args.verbose
    )

    if result.baseline_updated:
        print(f"[SUCCESS] {test_name} 基线已更新 (耗时: {result.duration_ms/1000:.1f}s)")
    else:
        print(f"[SUCCESS] {test_name} 与基线一致 (耗时: {result.duration_ms/1000:.1f}s)")
    return EXIT_OK


def cmd_compare(args) -> int:
    """执行compare命令"""
    config = Config(Path(args.config) if args.config else None).load()
    if args.threshold is not None:
        config.image_threshold = args.threshold

    runner = RegressionRunner(config, store=None, extractor=None)
    runner.compare_snapshots(Path(args.baseline), Path(args.current), verbose=args.verbose)

    print("[SUCCESS] 快照一致")
    return EXIT_OK


def cmd_compare_images(args) -> int:
    """执行compare-images命令"""
    compare_images(args.image1, args.image2, args.threshold)
    print("[SUCCESS] 图像一致")
    return EXIT_OK


def cmd_download(args) -> int:
    """执行download命令"""
    config = _load_config(args, storage=True, extraction=False)
    dest = create_store(config).download(args.test_name, args.dest)
    print(f"[SUCCESS] 基线已下载到: {dest}")
    return EXIT_OK


def cmd_upload(args) -> int:
    """执行upload命令"""
    config = _load_config(args, storage=True, extraction=False)
    key = create_store(config).upload(args.test_name, args.src)
    print(f"[SUCCESS] 基线已上传: {key}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
