# -*- coding: utf-8 -*-
"""
声波信号处理核心模块
实现Chirp信号生成、互相关检测、信号质量评估等核心算法
"""

import numpy as np
from scipy import signal

from .models import SNR_FLOOR_DB, SPEED_OF_SOUND, SignalQuality


CHIRP_AMPLITUDE = 0.1         # 峰值幅度（满量程的10%），避免削波失真
EPSILON = 1e-3                # 防止 log(0) 和除零
# 尚未实现频域分析，频响固定为占位值
FREQUENCY_RESPONSE_PLACEHOLDER = 0.5


def generate_chirp(config):
    """
    生成Chirp信号（线性调频信号）

    相同的配置总是得到逐位相同的输出

    Args:
        config: ChirpConfig

    Returns:
        numpy.ndarray: 长度为 采样率*时长 的Chirp信号

    Raises:
        InvalidConfig: 频率顺序、时长或采样率不合法
    """
    config.check()
    n_samples = config.num_samples
    if n_samples == 0:
        return np.zeros(0)

    t = np.arange(n_samples) / config.sample_rate_hz

    # 生成线性调频信号，phi=-90 使起始相位为0（正弦）
    chirp_signal = signal.chirp(t, f0=config.frequency_start, f1=config.frequency_end,
                                t1=config.duration_s, method='linear', phi=-90)

    # 汉宁窗包络，中间最大，两端为零，减少频谱泄漏
    window = signal.get_window('hann', n_samples)
    return CHIRP_AMPLITUDE * window * chirp_signal


def correlate(reference, recorded, method='auto'):
    """
    计算参考信号与录音的互相关

    curve[i] = sum_j reference[j] * recorded[j + i]，i 从 0 到 max(两者长度) - 1，
    并按参考信号能量归一化（自相关在延迟0处为1.0）

    Args:
        reference: 参考Chirp信号
        recorded: 录制的回波信号
        method: 'direct'、'fft' 或 'auto'，结果在浮点误差内一致

    Returns:
        tuple: (峰值位置, 峰值, 相关曲线)，多个相同最大值时取最早的
    """
    reference = np.asarray(reference, dtype=np.float64).ravel()
    recorded = np.asarray(recorded, dtype=np.float64).ravel()

    length = max(reference.size, recorded.size)
    if reference.size == 0 or recorded.size == 0:
        return 0, 0.0, np.zeros(length)

    full = signal.correlate(recorded, reference, mode='full', method=method)

    # full[k] 对应延迟 k - (len(reference) - 1)，只保留非负延迟
    curve = np.zeros(length)
    non_negative = full[reference.size - 1:]
    curve[:non_negative.size] = non_negative

    energy = float(np.dot(reference, reference))
    if energy > 0:
        curve /= energy

    peak_index = int(np.argmax(curve))
    return peak_index, float(curve[peak_index]), curve


def estimate_signal_quality(curve, peak_value, echo,
                            frequency_response=FREQUENCY_RESPONSE_PLACEHOLDER):
    """
    由相关曲线和原始回波计算信号质量

    Args:
        curve: 相关曲线
        peak_value: 相关峰值
        echo: 原始回波采样

    Returns:
        SignalQuality
    """
    curve = np.asarray(curve, dtype=np.float64)
    echo = np.asarray(echo, dtype=np.float64)

    if echo.size:
        snr_db = float(20 * np.log10(np.mean(echo ** 2) + EPSILON))
    else:
        snr_db = SNR_FLOOR_DB

    if curve.size:
        clarity = peak_value / (float(np.mean(np.abs(curve))) + EPSILON)
        clarity = min(max(clarity, 0.0), 1.0)
    else:
        clarity = 0.0

    return SignalQuality(
        peak_correlation=float(peak_value),
        signal_to_noise_ratio_db=snr_db,
        echo_clarity=float(clarity),
        noise_level_db=-snr_db,
        frequency_response=frequency_response,
    )


def bandpass_filter(recorded, config, margin_hz=1000, order=4):
    """
    带通滤波，只保留Chirp频率范围

    Args:
        recorded: 录制的音频信号
        config: ChirpConfig
        margin_hz: 通带两侧留出的余量

    Returns:
        numpy.ndarray: 滤波后的信号，过短的信号原样返回
    """
    recorded = np.asarray(recorded, dtype=np.float64).ravel()
    nyquist = config.sample_rate_hz / 2
    low = max((config.frequency_start - margin_hz) / nyquist, 0.01)
    high = min((config.frequency_end + margin_hz) / nyquist, 0.99)

    b, a = signal.butter(order, [low, high], btype='band')
    # filtfilt 要求信号长度大于 padlen
    if recorded.size <= 3 * max(len(a), len(b)):
        return recorded
    return signal.filtfilt(b, a, recorded)


class SignalProcessor:
    """声波信号处理器，绑定一个 ChirpConfig"""

    def __init__(self, config, speed_of_sound=SPEED_OF_SOUND):
        """
        初始化信号处理器

        Args:
            config: ChirpConfig
            speed_of_sound: 声速 (m/s)，标准条件下约343m/s
        """
        self.config = config
        self.sample_rate = config.sample_rate_hz
        self.speed_of_sound = speed_of_sound

        # 生成参考Chirp信号
        self.reference_chirp = generate_chirp(config)

    def time_of_flight_micros(self, lag_samples):
        """延迟采样点数 -> 往返飞行时间 (微秒)"""
        return lag_samples / self.sample_rate * 1_000_000

    def distance_from_tof(self, tof_micros):
        """
        基于往返飞行时间计算距离

        Returns:
            float: 距离（米），除以2得到单程距离
        """
        return max(0.0, (tof_micros / 1_000_000) * self.speed_of_sound / 2)

    def listening_window_s(self, max_range_meters, cap_s=0.5):
        """往返最大测距范围所需的监听时长，上限 cap_s 秒"""
        return min(max_range_meters * 2 / self.speed_of_sound, cap_s)
