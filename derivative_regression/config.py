"""
配置解析模块
负责从环境变量和可选的regression_config.json加载配置
"""

import json
import os
import shlex
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional


DEFAULT_CONFIG_FILE = "regression_config.json"

FORGE_ENV_VARS = ("FORGE_CLIENT_ID", "FORGE_CLIENT_SECRET")
AWS_ENV_VARS = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_DEFAULT_REGION", "AWS_S3_BUCKET")


class Config:
    """配置管理器"""

    def __init__(self, config_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径，默认为当前目录下的regression_config.json（不存在时忽略）
            environ: 环境变量，默认为os.environ
        """
        self._explicit_path = config_path is not None
        self.config_path = Path(config_path) if config_path is not None else Path.cwd() / DEFAULT_CONFIG_FILE
        self._environ = environ if environ is not None else os.environ

        self.forge_client_id: Optional[str] = None
        self.forge_client_secret: Optional[str] = None
        self.aws_access_key_id: Optional[str] = None
        self.aws_secret_access_key: Optional[str] = None
        self.aws_default_region: Optional[str] = None
        self.aws_s3_bucket: Optional[str] = None
        self.local_store_dir: Optional[Path] = None

        self.work_dir = Path.cwd()
        self.test_prefix = "model-derivative/basic"
        self.image_threshold = 0.1
        self.package_name = "output.svf"
        self.extractor: List[str] = []
        self.extract_timeout: Optional[int] = None
        self.transfer_timeout: Optional[int] = None

        self._data: Dict[str, Any] = {}

    def load(self) -> "Config":
        """加载配置文件和环境变量，环境变量优先"""
        if self.config_path.exists():
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._data = json.load(f)
        elif self._explicit_path:
            raise FileNotFoundError(f"配置文件不存在: {self.config_path}")

        self._parse_file_settings()
        self._parse_environment()
        return self

    def _parse_file_settings(self) -> None:
        """解析配置文件"""
        data = self._data

        if "work_dir" in data:
            self.work_dir = Path(data["work_dir"])
        self.test_prefix = data.get("test_prefix", self.test_prefix).strip("/")
        self.image_threshold = float(data.get("image_threshold", self.image_threshold))
        self.package_name = data.get("package_name", self.package_name)
        self.extract_timeout = data.get("extract_timeout", self.extract_timeout)
        self.transfer_timeout = data.get("transfer_timeout", self.transfer_timeout)
        if data.get("local_store_dir"):
            self.local_store_dir = Path(data["local_store_dir"])

        extractor = data.get("extractor", [])
        self.extractor = shlex.split(extractor) if isinstance(extractor, str) else list(extractor)

        if not 0.0 <= self.image_threshold <= 1.0:
            raise ValueError(f"image_threshold必须在[0, 1]范围内: {self.image_threshold}")

    def _parse_environment(self) -> None:
        """解析环境变量"""
        env = self._environ

        self.forge_client_id = env.get("FORGE_CLIENT_ID") or None
        self.forge_client_secret = env.get("FORGE_CLIENT_SECRET") or None
        self.aws_access_key_id = env.get("AWS_ACCESS_KEY_ID") or None
        self.aws_secret_access_key = env.get("AWS_SECRET_ACCESS_KEY") or None
        self.aws_default_region = env.get("AWS_DEFAULT_REGION") or None
        self.aws_s3_bucket = env.get("AWS_S3_BUCKET") or None

        if env.get("BASELINE_STORE_DIR"):
            self.local_store_dir = Path(env["BASELINE_STORE_DIR"])
        if env.get("DERIVATIVE_EXTRACTOR"):
            self.extractor = shlex.split(env["DERIVATIVE_EXTRACTOR"])

    def missing_settings(self, storage: bool = True, extraction: bool = True) -> List[str]:
        """
        列出缺失的必要配置

        Args:
            storage: 是否需要访问基线存储
            extraction: 是否需要提取产物

        Returns:
            List[str]: 缺失的环境变量名称
        """
        missing = []

        if extraction:
            for name in FORGE_ENV_VARS:
                if not self._environ.get(name):
                    missing.append(name)
            if not self.extractor:
                missing.append("DERIVATIVE_EXTRACTOR")

        if storage and self.local_store_dir is None:
            for name in AWS_ENV_VARS:
                if not self._environ.get(name):
                    missing.append(name)

        return missing

    def extractor_env(self) -> Dict[str, str]:
        """传给提取命令的环境变量"""
        env = {"PATH": self._environ.get("PATH", os.environ.get("PATH", ""))}
        if self.forge_client_id:
            env["FORGE_CLIENT_ID"] = self.forge_client_id
        if self.forge_client_secret:
            env["FORGE_CLIENT_SECRET"] = self.forge_client_secret
        return env

    def __repr__(self) -> str:
        return f"Config(config_path={self.config_path}, work_dir={self.work_dir})"
