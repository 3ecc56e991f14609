"""
错误类型模块

比对失败统一抛出ComparisonError，基线传输和产物解码失败统一抛出TransportError
"""

from typing import Iterable


class RegressionError(Exception):
    """回归测试错误基类"""

    def __init__(self, description: str):
        super().__init__(description)
        self.description = description


class ComparisonError(RegressionError):
    """基线与当前结果不一致"""

    def __init__(self, description: str, differences: Iterable = ()):
        super().__init__(description)
        self.differences = list(differences)


class TransportError(RegressionError):
    """基线存取、产物提取或解码失败"""
