# -*- coding: utf-8 -*-
"""
测距结果聚合
将同一方向的多次测距合并为稳定的距离估计，并给出可靠性判定
"""

from collections import OrderedDict, deque

import numpy as np

from .config import ReliabilityThresholds
from .exceptions import InvalidArgument
from .models import AggregatedMeasurement, Direction


def outlier_mask(values, threshold):
    """
    使用基于中位数的绝对偏差（MAD）方法标记异常值

    Args:
        values: 测量值数组
        threshold: 异常值阈值（以标准差倍数计算）

    Returns:
        numpy.ndarray: 布尔数组，True 表示保留
    """
    values = np.asarray(values, dtype=np.float64)
    keep = np.ones(values.size, dtype=bool)
    if values.size < 3:
        return keep

    median = np.median(values)
    mad = np.median(np.abs(values - median))

    # MAD为0时使用标准差方法
    if mad < 1e-6:
        std = np.std(values)
        if std < 1e-6:
            return keep
        return np.abs(values - median) <= threshold * std

    # 1.4826是使MAD与标准差一致的系数
    return np.abs(values - median) <= threshold * 1.4826 * mad


def aggregate(pings, thresholds=None, outlier_threshold=None, direction=None):
    """
    聚合同一方向的多次测距

    Args:
        pings: PingResult 序列，按采集顺序
        thresholds: ReliabilityThresholds，可靠性阈值
        outlier_threshold: MAD 异常值阈值，None 表示不过滤
        direction: 没有测距结果时使用的方向

    Returns:
        AggregatedMeasurement

    Raises:
        InvalidArgument: 测距方向不一致
    """
    thresholds = thresholds or ReliabilityThresholds()
    pings = tuple(pings)

    if not pings:
        return AggregatedMeasurement(
            distance_meters=0.0,
            confidence=0.0,
            quality=0.0,
            standard_deviation=0.0,
            sample_count=0,
            direction=direction or Direction.FORWARD,
            contributing_pings=(),
            is_reliable=False,
            estimated_accuracy=thresholds.accuracy_penalty,
        )

    direction = pings[0].direction
    for ping in pings[1:]:
        if not ping.direction.is_close(direction, tolerance=1e-3):
            raise InvalidArgument("只能聚合同一方向的测距结果")

    if outlier_threshold is not None:
        keep = outlier_mask([p.distance_meters for p in pings], outlier_threshold)
        pings = tuple(p for p, k in zip(pings, keep) if k)

    distances = np.array([p.distance_meters for p in pings])
    count = distances.size
    std = float(np.std(distances, ddof=1)) if count > 1 else 0.0
    confidence = float(np.mean([p.confidence for p in pings]))
    quality = float(np.mean([p.signal_quality.overall_quality for p in pings]))

    is_reliable = (count >= thresholds.min_samples
                   and std <= thresholds.max_standard_deviation
                   and confidence >= thresholds.min_confidence)

    return AggregatedMeasurement(
        distance_meters=float(np.mean(distances)),
        confidence=confidence,
        quality=quality,
        standard_deviation=std,
        sample_count=count,
        direction=direction,
        contributing_pings=pings,
        is_reliable=is_reliable,
        # 偏保守的精度估计
        estimated_accuracy=std + (1.0 - confidence) * thresholds.accuracy_penalty,
    )


class Aggregator:
    """按方向维护滑动窗口的聚合器"""

    def __init__(self, window_size=5, thresholds=None, outlier_threshold=None, max_directions=64):
        """
        初始化聚合器

        Args:
            window_size: 每个方向保留的最近测距次数
            thresholds: ReliabilityThresholds
            outlier_threshold: MAD 异常值阈值，None 表示不过滤
            max_directions: 最多保留的方向数，超出时丢弃最久未更新的方向
        """
        if window_size < 1:
            raise InvalidArgument(f"窗口大小必须大于0: {window_size}")
        if max_directions < 1:
            raise InvalidArgument(f"方向数上限必须大于0: {max_directions}")
        self.window_size = window_size
        self.thresholds = thresholds or ReliabilityThresholds()
        self.max_directions = max_directions
        self.outlier_threshold = outlier_threshold
        self.windows = OrderedDict()

    @classmethod
    def from_profile(cls, profile):
        return cls(window_size=profile.window_size,
                   thresholds=profile.reliability,
                   outlier_threshold=profile.outlier_threshold)

    def add(self, ping):
        """
        添加新测距结果

        Returns:
            AggregatedMeasurement: 该方向最新的聚合结果
        """
        key = ping.direction.key()
        window = self.windows.setdefault(key, deque(maxlen=self.window_size))
        window.append(ping)
        self.windows.move_to_end(key)
        while len(self.windows) > self.max_directions:
            self.windows.popitem(last=False)
        return self.measurement(ping.direction)

    def measurement(self, direction):
        direction = Direction.from_value(direction).normalized()
        window = self.windows.get(direction.key(), ())
        return aggregate(window, self.thresholds, self.outlier_threshold, direction=direction)

    def reset(self, direction=None):
        """重置某个方向的窗口，不指定方向时全部清空"""
        if direction is None:
            self.windows.clear()
        else:
            self.windows.pop(Direction.from_value(direction).key(), None)
