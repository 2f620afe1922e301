# -*- coding: utf-8 -*-
"""
测距配置
预设（室内/室外）、可靠性阈值以及 YAML 配置文件读写
"""

import math
from dataclasses import dataclass, field, replace
from typing import Optional

import yaml

from .exceptions import InvalidConfig
from .models import SPEED_OF_SOUND, ChirpConfig


@dataclass(frozen=True)
class ReliabilityThresholds:
    """聚合测量的可靠性判定阈值"""

    min_samples: int = 3
    max_standard_deviation: float = 0.05   # m
    min_confidence: float = 0.6
    accuracy_penalty: float = 0.1          # 精度估计中 (1 - 置信度) 的系数


@dataclass(frozen=True)
class RangingProfile:
    """一组完整的测距参数"""

    name: str = 'default'
    chirp: ChirpConfig = field(default_factory=ChirpConfig)
    reliability: ReliabilityThresholds = field(default_factory=ReliabilityThresholds)
    window_size: int = 5                   # 聚合滑动窗口大小
    speed_of_sound: float = SPEED_OF_SOUND
    outlier_threshold: Optional[float] = None  # MAD 异常值阈值，None 表示不过滤


PRESETS = {
    'default': RangingProfile(),
    'indoor': RangingProfile(
        name='indoor',
        chirp=ChirpConfig(frequency_start=18000.0, frequency_end=22000.0,
                          duration_ms=50.0, sample_rate_hz=44100,
                          max_range_meters=5.0),
        reliability=ReliabilityThresholds(min_samples=3, max_standard_deviation=0.05,
                                          min_confidence=0.6),
        window_size=5,
    ),
    'outdoor': RangingProfile(
        name='outdoor',
        chirp=ChirpConfig(frequency_start=17000.0, frequency_end=21000.0,
                          duration_ms=100.0, sample_rate_hz=48000,
                          max_range_meters=15.0),
        reliability=ReliabilityThresholds(min_samples=3, max_standard_deviation=0.10,
                                          min_confidence=0.5),
        window_size=8,
        outlier_threshold=3.0,
    ),
}


def get_preset(name):
    """
    获取预设配置

    Args:
        name: 'default'、'indoor' 或 'outdoor'

    Raises:
        InvalidConfig: 未知预设
    """
    try:
        return PRESETS[name]
    except KeyError:
        raise InvalidConfig(f"未知预设: {name!r}，可选: {', '.join(sorted(PRESETS))}")


def speed_of_sound_at(temperature_c):
    """按温度修正声速 (m/s)"""
    return 331.3 * math.sqrt(1 + temperature_c / 273.15)


def load_profile(path):
    """
    从 YAML 文件加载测距配置，未给出的字段沿用 'preset' 指定的预设（默认 default）

    Args:
        path: 配置文件路径

    Returns:
        RangingProfile

    Raises:
        InvalidConfig: 文件无法读取、不是合法 YAML 或包含未知字段
    """
    try:
        with open(path, 'r', encoding='utf-8') as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise InvalidConfig(f"无法读取配置文件 {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise InvalidConfig(f"配置文件不是合法的 YAML {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidConfig(f"配置文件格式错误: {path}")

    base = get_preset(data.get('preset', 'default'))
    try:
        chirp = replace(base.chirp, **data.get('chirp', {}))
        reliability = replace(base.reliability, **data.get('reliability', {}))
    except TypeError as exc:
        raise InvalidConfig(f"配置文件包含未知字段: {exc}") from exc

    return replace(
        base,
        name=data.get('name', base.name),
        chirp=chirp,
        reliability=reliability,
        window_size=int(data.get('window_size', base.window_size)),
        speed_of_sound=float(data.get('speed_of_sound', base.speed_of_sound)),
        outlier_threshold=data.get('outlier_threshold', base.outlier_threshold),
    )


def save_profile(path, profile):
    data = {
        'name': profile.name,
        'chirp': {
            'frequency_start': profile.chirp.frequency_start,
            'frequency_end': profile.chirp.frequency_end,
            'duration_ms': profile.chirp.duration_ms,
            'sample_rate_hz': profile.chirp.sample_rate_hz,
            'max_range_meters': profile.chirp.max_range_meters,
        },
        'reliability': {
            'min_samples': profile.reliability.min_samples,
            'max_standard_deviation': profile.reliability.max_standard_deviation,
            'min_confidence': profile.reliability.min_confidence,
            'accuracy_penalty': profile.reliability.accuracy_penalty,
        },
        'window_size': profile.window_size,
        'speed_of_sound': profile.speed_of_sound,
        'outlier_threshold': profile.outlier_threshold,
    }
    with open(path, 'w', encoding='utf-8') as handle:
        yaml.safe_dump(data, handle, sort_keys=False, allow_unicode=True)
