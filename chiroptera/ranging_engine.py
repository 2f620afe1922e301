# -*- coding: utf-8 -*-
"""
测距引擎
整合信号处理和音频IO，执行一次完整的回声测距（ping）
"""

import asyncio
import logging
import math
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from .exceptions import InvalidArgument
from .models import SPEED_OF_SOUND, Direction, PingResult, SignalQuality
from .signal_processor import (
    FREQUENCY_RESPONSE_PLACEHOLDER,
    SignalProcessor,
    bandpass_filter,
    correlate,
    estimate_signal_quality,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EchoAnalysis:
    """一次回波分析的中间结果，供诊断绘图使用"""

    reference: np.ndarray
    echo: np.ndarray
    curve: np.ndarray
    peak_index: int
    peak_value: float
    quality: SignalQuality

    @property
    def has_signal(self):
        return self.reference.size > 0 and self.echo.size > 0


class RangingEngine:
    """测距引擎 - 核心测距逻辑"""

    # 测距状态
    STATE_IDLE = 'idle'
    STATE_SENDING = 'sending'
    STATE_PROCESSING = 'processing'

    MAX_LISTEN_S = 0.5   # 监听窗口上限，限制延迟和内存

    def __init__(self, config, audio, executor=None, speed_of_sound=SPEED_OF_SOUND,
                 bandpass=False):
        """
        初始化测距引擎

        Args:
            config: ChirpConfig
            audio: AudioIOProvider，由会话独占
            executor: 运行阻塞IO和互相关计算的线程池，None 使用事件循环默认线程池
            speed_of_sound: 声速 (m/s)
            bandpass: 互相关前是否对录音做带通滤波
        """
        self.config = config
        self.audio = audio
        self.executor = executor
        self.bandpass = bandpass

        self.signal_processor = SignalProcessor(config, speed_of_sound=speed_of_sound)

        self.state = self.STATE_IDLE
        self.last_analysis: Optional[EchoAnalysis] = None

        # 回调函数
        self.on_state_changed: Optional[Callable] = None

    @property
    def speed_of_sound(self):
        return self.signal_processor.speed_of_sound

    @property
    def reference_chirp(self):
        return self.signal_processor.reference_chirp

    def _set_state(self, new_state):
        """更新状态"""
        self.state = new_state
        if self.on_state_changed:
            self.on_state_changed(new_state)

    def capture_frames(self, max_range_meters):
        """
        录音采样点数 = Chirp时长 + 监听窗口

        录音从播放开始，因此延迟0对应发射时刻
        """
        window_s = self.signal_processor.listening_window_s(max_range_meters, self.MAX_LISTEN_S)
        return self.reference_chirp.size + int(math.ceil(window_s * self.config.sample_rate_hz))

    def analyze(self, echo, reference=None):
        """
        对录制的回波做互相关和质量评估（纯计算，可在线程池中运行）

        Args:
            echo: 录制的回波
            reference: 参考信号，默认使用本引擎的Chirp

        Returns:
            EchoAnalysis
        """
        reference = self.reference_chirp if reference is None else np.asarray(reference, dtype=np.float64)
        echo = np.asarray(echo, dtype=np.float64).ravel()

        if reference.size == 0 or echo.size == 0:
            # 没有回波是正常的测距结果，不是错误
            return EchoAnalysis(
                reference=reference,
                echo=echo,
                curve=np.zeros(max(reference.size, echo.size)),
                peak_index=0,
                peak_value=0.0,
                quality=SignalQuality.no_signal(FREQUENCY_RESPONSE_PLACEHOLDER),
            )

        filtered = bandpass_filter(echo, self.config) if self.bandpass else echo
        peak_index, peak_value, curve = correlate(reference, filtered)
        quality = estimate_signal_quality(curve, peak_value, echo)

        return EchoAnalysis(
            reference=reference,
            echo=echo,
            curve=curve,
            peak_index=peak_index,
            peak_value=peak_value,
            quality=quality,
        )

    def build_result(self, analysis, direction, max_range_meters, processing_time_ms):
        """
        将分析结果转换为 PingResult

        Args:
            analysis: EchoAnalysis
            direction: 单位方向向量
            max_range_meters: 本次测距的最大范围
            processing_time_ms: 处理耗时
        """
        if analysis.has_signal:
            tof_micros = self.signal_processor.time_of_flight_micros(analysis.peak_index)
            distance = self.signal_processor.distance_from_tof(tof_micros)
            # 归一化峰值 >= 0.5 时置信度为1
            confidence = min(max(analysis.peak_value * 2.0, 0.0), 1.0)
        else:
            tof_micros = 0.0
            distance = 0.0
            confidence = 0.0

        return PingResult(
            id=uuid.uuid4().hex,
            timestamp=time.time(),
            direction=direction,
            distance_meters=float(distance),
            confidence=float(confidence),
            time_of_flight_micros=float(tof_micros),
            signal_quality=analysis.quality,
            processing_time_ms=float(processing_time_ms),
            max_range_meters=float(max_range_meters),
            speed_of_sound=self.speed_of_sound,
        )

    async def perform_ping(self, direction=None, max_range=None):
        """
        执行一次测距：播放Chirp、录制回波、互相关、计算距离

        Args:
            direction: 测距方向，默认正前方
            max_range: 最大测距范围 (m)，默认使用配置值

        Returns:
            PingResult

        Raises:
            InvalidArgument: 方向为零向量或测距范围不合法
            HardwareUnavailable: 播放/录音失败
        """
        started = time.perf_counter()
        direction = Direction.from_value(direction).normalized()
        if max_range is None:
            max_range = self.config.max_range_meters
        if not max_range > 0:
            raise InvalidArgument(f"最大测距范围必须大于0: {max_range}")

        frames = self.capture_frames(max_range)
        loop = asyncio.get_running_loop()

        try:
            self._set_state(self.STATE_SENDING)
            echo = await loop.run_in_executor(
                self.executor, self.audio.play_and_record, self.reference_chirp, frames)

            self._set_state(self.STATE_PROCESSING)
            analysis = await loop.run_in_executor(self.executor, self.analyze, echo)
        finally:
            self._set_state(self.STATE_IDLE)

        self.last_analysis = analysis
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        result = self.build_result(analysis, direction, max_range, elapsed_ms)

        logger.debug("ping %s: 延迟=%d 距离=%.3fm 置信度=%.2f 耗时=%.1fms",
                     result.id, analysis.peak_index, result.distance_meters,
                     result.confidence, elapsed_ms)
        return result
