"""
产物提取模块

负责调用外部提取命令，把模型转换服务生成的衍生产物下载到本地目录:
<output_dir>/<urn>/manifest.json 以及 <output_dir>/<urn>/<guid>/ 下的场景包和资源文件
"""

import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


class ExtractionStatus(Enum):
    """提取状态枚举"""
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass
class ExtractionResult:
    """提取结果数据类"""
    status: ExtractionStatus
    success: bool
    duration_ms: int
    output_dir: str
    error_message: Optional[str] = None
    stdout: Optional[str] = None
    stderr: Optional[str] = None


class Extractor:
    """衍生产物提取器"""

    def __init__(self, command: List[str], env: Optional[Dict[str, str]] = None):
        """
        初始化提取器

        Args:
            command: 提取命令及其固定参数
            env: 提取命令的环境变量（包含转换服务凭证）
        """
        if not command:
            raise ValueError("提取命令不能为空")
        self.command = list(command)
        self.env = env

    def extract(
        self,
        bucket_key: str,
        object_key: str,
        output_dir: Path,
        timeout: Optional[int] = None,
        verbose: bool = False
    ) -> ExtractionResult:
        """
        提取衍生产物

        Args:
            bucket_key: 源模型所在的存储桶
            object_key: 源模型的对象名
            output_dir: 输出目录
            timeout: 超时时间（秒）
            verbose: 是否显示详细信息

        Returns:
            ExtractionResult: 提取结果
        """
        start_time = time.time()
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        cmd = self._build_command(bucket_key, object_key, output_dir)

        if verbose:
            print(f"[INFO] 执行提取命令: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=self.env
            )
        except subprocess.TimeoutExpired:
            return ExtractionResult(
                status=ExtractionStatus.TIMEOUT,
                success=False,
                duration_ms=int((time.time() - start_time) * 1000),
                output_dir=str(output_dir),
                error_message=f"提取超时（{timeout}秒）"
            )
        except OSError as e:
            return ExtractionResult(
                status=ExtractionStatus.FAILED,
                success=False,
                duration_ms=int((time.time() - start_time) * 1000),
                output_dir=str(output_dir),
                error_message=f"提取异常: {e}"
            )

        duration_ms = int((time.time() - start_time) * 1000)

        if result.returncode != 0:
            error_msg = f"提取失败，返回码: {result.returncode}"
            if result.stderr:
                error_msg += f"\n错误信息: {result.stderr}"
            return ExtractionResult(
                status=ExtractionStatus.FAILED,
                success=False,
                duration_ms=duration_ms,
                output_dir=str(output_dir),
                error_message=error_msg,
                stdout=result.stdout,
                stderr=result.stderr
            )

        return ExtractionResult(
            status=ExtractionStatus.SUCCESS,
            success=True,
            duration_ms=duration_ms,
            output_dir=str(output_dir),
            stdout=result.stdout,
            stderr=result.stderr
        )

    def _build_command(self, bucket_key: str, object_key: str, output_dir: Path) -> List[str]:
        """构建提取命令"""
        return self.command + [bucket_key, object_key, str(output_dir)]
