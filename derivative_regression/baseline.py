"""
基线存储模块

基线以 baselines/<测试名>.tar.gz 的形式存放在远程存储中，每个测试名只保留一份，
更新时直接覆盖。远程访问通过aws命令行完成，也可以使用本地目录代替远程存储
"""

import os
import shutil
import subprocess
import tarfile
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from .errors import TransportError


BASELINE_PREFIX = "baselines"
AWS_ENV_VARS = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_DEFAULT_REGION")


class AwsCliTransport:
    """通过aws命令行访问S3"""

    def __init__(self, bucket: str, env: Optional[Dict[str, str]] = None, timeout: Optional[int] = None):
        """
        初始化S3传输

        Args:
            bucket: S3存储桶名称
            env: 传给aws命令的AWS凭证
            timeout: 单次传输超时时间（秒），None表示不限制
        """
        self.bucket = bucket
        self.timeout = timeout
        self.env = {"PATH": os.environ.get("PATH", "")}
        for name in AWS_ENV_VARS:
            value = (env or {}).get(name)
            if value:
                self.env[name] = value

    def url_for(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"

    def get(self, key: str, dest_file: Path) -> None:
        """下载对象到本地文件"""
        self._run(["aws", "s3", "cp", self.url_for(key), str(dest_file)])

    def put(self, src_file: Path, key: str) -> None:
        """上传本地文件，覆盖已存在的对象"""
        self._run(["aws", "s3", "cp", str(src_file), self.url_for(key)])

    def _run(self, cmd: List[str]) -> None:
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=self.env
            )
        except subprocess.TimeoutExpired as e:
            raise TransportError(f"aws命令执行超时: {' '.join(cmd)}") from e
        except OSError as e:
            raise TransportError(f"aws命令执行异常: {e}") from e

        if result.returncode != 0:
            error_msg = f"aws命令执行失败，返回码: {result.returncode}"
            if result.stderr:
                error_msg += f"\n错误信息: {result.stderr.strip()}"
            raise TransportError(error_msg)


class LocalTransport:
    """使用本地目录代替远程存储"""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def get(self, key: str, dest_file: Path) -> None:
        src = self.root / key
        if not src.is_file():
            raise TransportError(f"基线不存在: {src}")
        try:
            shutil.copyfile(src, dest_file)
        except OSError as e:
            raise TransportError(f"基线读取失败: {e}") from e

    def put(self, src_file: Path, key: str) -> None:
        dest = self.root / key
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src_file, dest)
        except OSError as e:
            raise TransportError(f"基线写入失败: {e}") from e


class SnapshotStore:
    """基线快照存储"""

    def __init__(self, transport):
        self.transport = transport

    @staticmethod
    def key_for(test_name: str) -> str:
        """
        获取测试对应的存储键

        Args:
            test_name: 以斜杠分隔的测试名，如 model-derivative/basic/bucket/object

        Returns:
            str: baselines/<test_name>.tar.gz
        """
        parts = test_name.split("/")
        if not test_name or test_name.startswith("/") or any(part in ("", ".", "..") for part in parts):
            raise ValueError(f"无效的测试名: {test_name!r}")
        return f"{BASELINE_PREFIX}/{test_name}.tar.gz"

    def download(self, test_name: str, dest_dir: Union[str, Path]) -> Path:
        """
        下载并解压基线到本地目录

        Args:
            test_name: 测试名
            dest_dir: 解压目标目录，不存在时自动创建

        Returns:
            Path: 目标目录
        """
        key = self.key_for(test_name)
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix="baseline_") as tmp:
            archive = Path(tmp) / "baseline.tar.gz"
            self.transport.get(key, archive)
            try:
                with tarfile.open(archive, "r:gz") as tar:
                    tar.extractall(dest_dir, filter="data")
            except (tarfile.TarError, OSError) as e:
                raise TransportError(f"基线解压失败 {key}: {e}") from e

        return dest_dir

    def upload(self, test_name: str, src_dir: Union[str, Path]) -> str:
        """
        打包本地目录并上传为新的基线，覆盖已有基线

        Args:
            test_name: 测试名
            src_dir: 要打包的目录

        Returns:
            str: 存储键
        """
        key = self.key_for(test_name)
        src_dir = Path(src_dir)
        if not src_dir.is_dir():
            raise TransportError(f"目录不存在: {src_dir}")

        with tempfile.TemporaryDirectory(prefix="baseline_") as tmp:
            archive = Path(tmp) / "baseline.tar.gz"
            try:
                with tarfile.open(archive, "w:gz") as tar:
                    tar.add(src_dir, arcname=".")
            except (tarfile.TarError, OSError) as e:
                raise TransportError(f"基线打包失败 {src_dir}: {e}") from e
            self.transport.put(archive, key)

        return key


def create_store(config) -> SnapshotStore:
    """根据配置创建基线存储"""
    if config.local_store_dir:
        return SnapshotStore(LocalTransport(config.local_store_dir))

    return SnapshotStore(AwsCliTransport(
        config.aws_s3_bucket,
        env={
            "AWS_ACCESS_KEY_ID": config.aws_access_key_id,
            "AWS_SECRET_ACCESS_KEY": config.aws_secret_access_key,
            "AWS_DEFAULT_REGION": config.aws_default_region
        },
        timeout=config.transfer_timeout
    ))
