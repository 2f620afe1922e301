# -*- coding: utf-8 -*-
"""
测距数据模型
会话、单次测距结果、信号质量和聚合测量结果等数据结构
所有跨边界的数据都可以通过 to_dict() 转换为普通字典
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .exceptions import InvalidArgument, InvalidConfig


SPEED_OF_SOUND = 343.0        # 声速 (m/s)，20°C 左右

# 会话允许的频率范围
MIN_FREQUENCY_HZ = 100.0
MAX_FREQUENCY_HZ = 24000.0

MIN_VALID_DISTANCE = 0.1      # 最小有效距离 (m)
BASE_ACCURACY = 0.05          # 理想条件下的测距精度 (m)
SNR_FLOOR_DB = -60.0          # 20*log10(1e-3)，空信号时的信噪比


@dataclass(frozen=True)
class ChirpConfig:
    """Chirp信号配置，会话期间不可变"""

    frequency_start: float = 18000.0
    frequency_end: float = 22000.0
    duration_ms: float = 100.0
    sample_rate_hz: int = 44100
    max_range_meters: float = 10.0

    @property
    def num_samples(self):
        return int(self.sample_rate_hz * self.duration_ms / 1000)

    @property
    def duration_s(self):
        return self.duration_ms / 1000.0

    @property
    def nyquist_hz(self):
        return self.sample_rate_hz / 2.0

    @property
    def bandwidth_hz(self):
        return self.frequency_end - self.frequency_start

    def check(self):
        """
        检查生成Chirp所需的基本条件

        Raises:
            InvalidConfig: 频率顺序、时长或采样率不合法
        """
        if self.frequency_start >= self.frequency_end:
            raise InvalidConfig(
                f"起始频率 {self.frequency_start}Hz 必须小于结束频率 {self.frequency_end}Hz")
        if self.duration_ms <= 0:
            raise InvalidConfig(f"Chirp时长必须大于0: {self.duration_ms}ms")
        if self.sample_rate_hz <= 0:
            raise InvalidConfig(f"采样率必须大于0: {self.sample_rate_hz}Hz")

    def validate(self):
        """
        完整校验：基本条件 + 频率范围 [100Hz, min(24kHz, 采样率/2)] + 测距范围

        Raises:
            InvalidConfig: 任意一项不满足
        """
        self.check()
        upper = min(MAX_FREQUENCY_HZ, self.nyquist_hz)
        if self.frequency_start < MIN_FREQUENCY_HZ:
            raise InvalidConfig(
                f"起始频率 {self.frequency_start}Hz 低于下限 {MIN_FREQUENCY_HZ}Hz")
        if self.frequency_end > upper:
            raise InvalidConfig(
                f"结束频率 {self.frequency_end}Hz 超过上限 {upper}Hz "
                f"(采样率 {self.sample_rate_hz}Hz)")
        if self.max_range_meters <= 0:
            raise InvalidConfig(f"最大测距范围必须大于0: {self.max_range_meters}m")

    def to_dict(self):
        return {
            'frequencyStart': float(self.frequency_start),
            'frequencyEnd': float(self.frequency_end),
            'durationMs': float(self.duration_ms),
            'sampleRateHz': int(self.sample_rate_hz),
            'maxRangeMeters': float(self.max_range_meters),
        }


@dataclass(frozen=True)
class Capabilities:
    """本机音频硬件能力快照"""

    supports_ultrasonic: bool = False
    has_echo_cancellation: bool = False
    has_noise_suppression: bool = False
    has_automatic_gain_control: bool = False
    has_audio_input: bool = True
    has_audio_output: bool = True
    min_sample_rate: int = 8000
    max_sample_rate: int = 48000
    supported_formats: Tuple[str, ...] = ('float32',)
    audio_latency_ms: float = 0.0

    def is_compatible_with(self, config):
        """
        检查配置是否能在该硬件上运行

        Args:
            config: ChirpConfig

        Returns:
            bool: 采样率在支持范围内，且超声频段需要硬件支持超声
        """
        if not self.min_sample_rate <= config.sample_rate_hz <= self.max_sample_rate:
            return False
        if config.frequency_end > 20000 and not self.supports_ultrasonic:
            return False
        return True

    def to_dict(self):
        return {
            'supportsUltrasonic': self.supports_ultrasonic,
            'hasEchoCancellation': self.has_echo_cancellation,
            'hasNoiseSuppression': self.has_noise_suppression,
            'hasAutomaticGainControl': self.has_automatic_gain_control,
            'hasAudioInput': self.has_audio_input,
            'hasAudioOutput': self.has_audio_output,
            'minSampleRate': int(self.min_sample_rate),
            'maxSampleRate': int(self.max_sample_rate),
            'supportedFormats': list(self.supported_formats),
            'audioLatencyMs': float(self.audio_latency_ms),
        }


@dataclass(frozen=True)
class Direction:
    """测距方向向量"""

    x: float = 0.0
    y: float = 0.0
    z: float = 1.0

    @property
    def magnitude(self):
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def normalized(self):
        """
        Returns:
            Direction: 单位向量

        Raises:
            InvalidArgument: 零向量无法归一化
        """
        magnitude = self.magnitude
        if magnitude == 0 or not math.isfinite(magnitude):
            raise InvalidArgument(f"方向向量无法归一化: ({self.x}, {self.y}, {self.z})")
        return Direction(self.x / magnitude, self.y / magnitude, self.z / magnitude)

    def is_close(self, other, tolerance=1e-6):
        return (abs(self.x - other.x) <= tolerance
                and abs(self.y - other.y) <= tolerance
                and abs(self.z - other.z) <= tolerance)

    def key(self, precision=3):
        """用于按方向分组的哈希键"""
        unit = self.normalized()
        return (round(unit.x, precision), round(unit.y, precision), round(unit.z, precision))

    @classmethod
    def from_value(cls, value):
        """
        从 Direction、(x, y, z) 序列或 {'x', 'y', 'z'} 字典构造方向

        Args:
            value: 方向值，None 表示正前方
        """
        if value is None:
            return cls.FORWARD
        if isinstance(value, Direction):
            return value
        if isinstance(value, dict):
            return cls(float(value.get('x', 0.0)),
                       float(value.get('y', 0.0)),
                       float(value.get('z', 0.0)))
        try:
            x, y, z = value
        except (TypeError, ValueError):
            raise InvalidArgument(f"无法解析的方向: {value!r}")
        return cls(float(x), float(y), float(z))

    def to_dict(self):
        return {'x': float(self.x), 'y': float(self.y), 'z': float(self.z)}


Direction.FORWARD = Direction(0.0, 0.0, 1.0)


@dataclass(frozen=True)
class SignalQuality:
    """单次测距的信号质量诊断"""

    peak_correlation: float
    signal_to_noise_ratio_db: float
    echo_clarity: float
    noise_level_db: float
    frequency_response: float

    @property
    def snr_normalized(self):
        # [-60dB, 0dB] 线性映射到 [0, 1]
        value = (self.signal_to_noise_ratio_db - SNR_FLOOR_DB) / -SNR_FLOOR_DB
        return min(max(value, 0.0), 1.0)

    @property
    def overall_quality(self):
        """清晰度与归一化信噪比的加权组合，范围 [0, 1]"""
        return 0.6 * self.echo_clarity + 0.4 * self.snr_normalized

    @classmethod
    def no_signal(cls, frequency_response):
        return cls(
            peak_correlation=0.0,
            signal_to_noise_ratio_db=SNR_FLOOR_DB,
            echo_clarity=0.0,
            noise_level_db=-SNR_FLOOR_DB,
            frequency_response=frequency_response,
        )

    def to_dict(self):
        return {
            'peakCorrelation': float(self.peak_correlation),
            'signalToNoiseRatioDb': float(self.signal_to_noise_ratio_db),
            'echoClarity': float(self.echo_clarity),
            'noiseLevelDb': float(self.noise_level_db),
            'frequencyResponse': float(self.frequency_response),
            'overallQuality': float(self.overall_quality),
        }


@dataclass(frozen=True)
class PingResult:
    """单次测距结果，创建后不可修改"""

    id: str
    timestamp: float
    direction: Direction
    distance_meters: float
    confidence: float
    time_of_flight_micros: float
    signal_quality: SignalQuality
    processing_time_ms: float
    max_range_meters: float = 10.0
    speed_of_sound: float = SPEED_OF_SOUND

    @property
    def estimated_accuracy(self):
        return BASE_ACCURACY + (1.0 - self.confidence) * 0.1

    @property
    def is_distance_valid(self):
        return MIN_VALID_DISTANCE <= self.distance_meters <= self.max_range_meters

    @property
    def has_echo(self):
        return self.confidence > 0

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': float(self.timestamp),
            'direction': self.direction.to_dict(),
            'distanceMeters': float(self.distance_meters),
            'confidence': float(self.confidence),
            'timeOfFlightMicros': float(self.time_of_flight_micros),
            'signalQuality': self.signal_quality.to_dict(),
            'processingTimeMs': float(self.processing_time_ms),
            'maxRangeMeters': float(self.max_range_meters),
            'estimatedAccuracy': float(self.estimated_accuracy),
        }


class SessionState(Enum):
    """会话状态机"""

    UNINITIALIZED = 'uninitialized'
    INITIALIZED = 'initialized'
    READY = 'ready'
    ACTIVE = 'active'
    COMPLETED = 'completed'
    ERROR = 'error'


@dataclass
class Session:
    """测距会话，只由 SessionManager 修改"""

    session_id: str
    config: ChirpConfig
    capabilities: Capabilities
    start_time: float
    state: SessionState = SessionState.READY
    ping_count: int = 0
    successful_pings: int = 0
    end_time: Optional[float] = None

    @property
    def is_active(self):
        return self.state in (SessionState.READY, SessionState.ACTIVE)

    @property
    def success_rate(self):
        if self.ping_count == 0:
            return 0.0
        return self.successful_pings / self.ping_count

    @property
    def duration_s(self):
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def to_dict(self):
        return {
            'sessionId': self.session_id,
            'state': self.state.value,
            'startTime': float(self.start_time),
            'endTime': self.end_time,
            'pingCount': self.ping_count,
            'successfulPings': self.successful_pings,
            'config': self.config.to_dict(),
            'capabilities': self.capabilities.to_dict(),
        }


@dataclass(frozen=True)
class AggregatedMeasurement:
    """同一方向多次测距的聚合结果"""

    distance_meters: float
    confidence: float
    quality: float
    standard_deviation: float
    sample_count: int
    direction: Direction
    contributing_pings: Tuple[PingResult, ...] = field(default_factory=tuple)
    is_reliable: bool = False
    estimated_accuracy: float = 0.0

    def to_dict(self):
        return {
            'distanceMeters': float(self.distance_meters),
            'confidence': float(self.confidence),
            'quality': float(self.quality),
            'standardDeviation': float(self.standard_deviation),
            'sampleCount': int(self.sample_count),
            'direction': self.direction.to_dict(),
            'isReliable': bool(self.is_reliable),
            'estimatedAccuracy': float(self.estimated_accuracy),
            'contributingPings': [p.id for p in self.contributing_pings],
        }
