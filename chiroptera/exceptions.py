# -*- coding: utf-8 -*-
"""
测距引擎异常定义
每个异常都带有机器可读的错误码和人类可读的消息
"""


class ChiropteraError(Exception):
    """测距引擎异常基类"""

    code = 'CHIROPTERA_ERROR'
    retryable = False

    def __init__(self, message, code=None):
        """
        Args:
            message: 错误描述
            code: 错误码，默认使用类上定义的错误码
        """
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self):
        return {'code': self.code, 'message': self.message}

    def __str__(self):
        return f"{type(self).__name__}[{self.code}]: {self.message}"


class InvalidConfig(ChiropteraError, ValueError):
    """配置不合法或超出范围，修正前不可重试"""
    code = 'INVALID_CONFIG'


class InvalidArgument(ChiropteraError, ValueError):
    """调用参数不合法（方向向量、测距范围等）"""
    code = 'INVALID_ARGUMENT'


class NotInitialized(ChiropteraError):
    """在 initialize 之前调用了会话接口"""
    code = 'NOT_INITIALIZED'


class NoActiveSession(ChiropteraError):
    """没有处于活动状态的会话"""
    code = 'NO_ACTIVE_SESSION'


class InvalidSession(ChiropteraError):
    """会话ID与当前会话不匹配"""
    code = 'INVALID_SESSION'


class HardwareUnavailable(ChiropteraError):
    """音频设备获取失败，退避后重新 initialize 可重试"""
    code = 'HARDWARE_UNAVAILABLE'
    retryable = True


class PingInProgress(ChiropteraError):
    """上一次测距尚未完成"""
    code = 'PING_IN_PROGRESS'
    retryable = True


class PingCancelled(ChiropteraError):
    """测距过程中会话被停止，结果已丢弃"""
    code = 'PING_CANCELLED'
