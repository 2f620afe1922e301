# -*- coding: utf-8 -*-
"""
音频输入输出模块
定义音频IO提供者接口：播放Chirp并同步录制回波
SoundDeviceAudioIO 使用声卡，SimulatedAudioIO 合成延迟回波用于测试和演示
"""

import abc
import logging
import threading

import numpy as np

from .exceptions import HardwareUnavailable
from .models import SPEED_OF_SOUND, Capabilities

logger = logging.getLogger(__name__)

# 探测硬件支持的采样率
CANDIDATE_SAMPLE_RATES = (8000, 16000, 22050, 32000, 44100, 48000, 88200, 96000)


class AudioIOProvider(abc.ABC):
    """音频IO提供者接口，由活动会话独占"""

    @abc.abstractmethod
    def query_capabilities(self):
        """
        Returns:
            Capabilities: 硬件能力快照

        Raises:
            HardwareUnavailable: 无法访问音频设备
        """

    @abc.abstractmethod
    def is_available(self):
        """同时存在输入和输出设备时返回 True"""

    @abc.abstractmethod
    def open(self, sample_rate):
        """获取麦克风和扬声器"""

    @abc.abstractmethod
    def close(self):
        """释放设备，可重复调用"""

    @abc.abstractmethod
    def play_and_record(self, signal, frames):
        """
        播放信号并从播放开始时刻同步录制 frames 个采样点（阻塞）

        Args:
            signal: 要播放的信号
            frames: 录制的采样点数

        Returns:
            numpy.ndarray: 录制的音频数据，被 abort() 中断时可能不足 frames
        """

    @abc.abstractmethod
    def abort(self):
        """中断正在进行的播放/录音，使 play_and_record 尽快返回"""


def _import_sounddevice():
    try:
        import sounddevice as sd
    except (ImportError, OSError) as exc:  # PortAudio 缺失时抛出 OSError
        raise HardwareUnavailable(f"无法加载 sounddevice: {exc}") from exc
    return sd


class SoundDeviceAudioIO(AudioIOProvider):
    """基于 sounddevice (PortAudio) 的音频IO"""

    def __init__(self, input_device=None, output_device=None, channels=1):
        """
        初始化音频IO

        Args:
            input_device: 输入设备ID，None 使用系统默认
            output_device: 输出设备ID，None 使用系统默认
            channels: 通道数
        """
        self.input_device = input_device
        self.output_device = output_device
        self.channels = channels
        self.sample_rate = None
        self.is_open = False

    def get_devices(self):
        """
        获取可用的音频设备列表

        Returns:
            dict: 输入和输出设备列表
        """
        sd = _import_sounddevice()
        try:
            devices = sd.query_devices()
        except sd.PortAudioError as exc:
            raise HardwareUnavailable(f"查询音频设备失败: {exc}") from exc

        input_devices = []
        output_devices = []
        for i, device in enumerate(devices):
            if device['max_input_channels'] > 0:
                input_devices.append({
                    'id': i,
                    'name': device['name'],
                    'channels': device['max_input_channels'],
                    'sample_rate': device['default_samplerate']
                })
            if device['max_output_channels'] > 0:
                output_devices.append({
                    'id': i,
                    'name': device['name'],
                    'channels': device['max_output_channels'],
                    'sample_rate': device['default_samplerate']
                })

        return {
            'input': input_devices,
            'output': output_devices
        }

    def _supported_sample_rates(self, sd):
        rates = []
        for rate in CANDIDATE_SAMPLE_RATES:
            try:
                sd.check_input_settings(device=self.input_device, samplerate=rate,
                                        channels=self.channels, dtype='float32')
                sd.check_output_settings(device=self.output_device, samplerate=rate,
                                         channels=self.channels, dtype='float32')
            except sd.PortAudioError:
                continue
            rates.append(rate)
        return rates

    def query_capabilities(self):
        sd = _import_sounddevice()
        devices = self.get_devices()
        if not devices['input'] or not devices['output']:
            raise HardwareUnavailable("未找到可用的麦克风或扬声器")

        try:
            input_info = sd.query_devices(self.input_device, 'input')
            output_info = sd.query_devices(self.output_device, 'output')
        except (sd.PortAudioError, ValueError) as exc:
            raise HardwareUnavailable(f"查询默认音频设备失败: {exc}") from exc

        rates = self._supported_sample_rates(sd)
        if not rates:
            raise HardwareUnavailable("音频设备不支持任何候选采样率")

        latency_s = input_info['default_low_input_latency'] + output_info['default_low_output_latency']
        capabilities = Capabilities(
            supports_ultrasonic=max(rates) >= 44100,
            has_echo_cancellation=False,
            has_noise_suppression=False,
            has_automatic_gain_control=False,
            has_audio_input=True,
            has_audio_output=True,
            min_sample_rate=min(rates),
            max_sample_rate=max(rates),
            supported_formats=('float32', 'int16'),
            audio_latency_ms=latency_s * 1000.0,
        )
        logger.info("音频设备能力: 输入=%s 输出=%s 采样率=%d-%dHz",
                    input_info['name'], output_info['name'],
                    capabilities.min_sample_rate, capabilities.max_sample_rate)
        return capabilities

    def is_available(self):
        try:
            devices = self.get_devices()
        except HardwareUnavailable:
            return False
        return bool(devices['input']) and bool(devices['output'])

    def open(self, sample_rate):
        sd = _import_sounddevice()
        try:
            sd.check_input_settings(device=self.input_device, samplerate=sample_rate,
                                    channels=self.channels, dtype='float32')
            sd.check_output_settings(device=self.output_device, samplerate=sample_rate,
                                     channels=self.channels, dtype='float32')
        except sd.PortAudioError as exc:
            raise HardwareUnavailable(f"无法以 {sample_rate}Hz 打开音频设备: {exc}") from exc
        self.sample_rate = sample_rate
        self.is_open = True

    def close(self):
        if not self.is_open:
            return
        self.abort()
        self.is_open = False

    def play_and_record(self, signal, frames):
        if not self.is_open:
            raise HardwareUnavailable("音频设备未打开")
        sd = _import_sounddevice()

        # 播放信号补零到录音长度，播放与录音同时开始
        padded = np.zeros(max(frames, len(signal)), dtype=np.float32)
        padded[:len(signal)] = signal
        try:
            recording = sd.playrec(padded, self.sample_rate, channels=self.channels,
                                   dtype=np.float32,
                                   device=(self.input_device, self.output_device))
            sd.wait()
        except sd.PortAudioError as exc:
            raise HardwareUnavailable(f"播放/录音失败: {exc}") from exc

        return recording[:frames, 0].astype(np.float64)

    def abort(self):
        try:
            sd = _import_sounddevice()
        except HardwareUnavailable:
            return
        sd.stop()


class SimulatedAudioIO(AudioIOProvider):
    """
    模拟音频IO：录音 = 延迟并衰减的播放信号 + 高斯噪声

    用于单元测试和无声卡环境下的演示
    """

    def __init__(self, delay_samples=None, attenuation=0.3, noise_level=0.0,
                 seed=None, capabilities=None, available=True,
                 fail_on_open=False, fail_on_capture=False, capture_time_s=0.0):
        """
        Args:
            delay_samples: 回波延迟（采样点），None 表示没有回波
            attenuation: 回波幅度系数
            noise_level: 噪声标准差
            seed: 随机数种子
            capabilities: 模拟的硬件能力
            capture_time_s: 每次录音阻塞的时长，可被 abort() 中断
        """
        self.delay_samples = delay_samples
        self.attenuation = attenuation
        self.noise_level = noise_level
        self.rng = np.random.default_rng(seed)
        self.capabilities = capabilities or Capabilities(
            supports_ultrasonic=True,
            has_echo_cancellation=True,
            has_noise_suppression=True,
            min_sample_rate=8000,
            max_sample_rate=96000,
            audio_latency_ms=0.0,
        )
        self.available = available
        self.fail_on_open = fail_on_open
        self.fail_on_capture = fail_on_capture
        self.capture_time_s = capture_time_s

        self.sample_rate = None
        self.is_open = False
        self.open_count = 0
        self.query_count = 0
        self.played = []
        self._abort_event = threading.Event()

    @classmethod
    def for_distance(cls, distance_meters, sample_rate, speed_of_sound=SPEED_OF_SOUND, **kwargs):
        """按目标距离计算回波延迟"""
        delay = int(round(distance_meters * 2 / speed_of_sound * sample_rate))
        return cls(delay_samples=delay, **kwargs)

    def query_capabilities(self):
        self.query_count += 1
        if not self.available:
            raise HardwareUnavailable("模拟设备不可用")
        return self.capabilities

    def is_available(self):
        return self.available

    def open(self, sample_rate):
        if self.fail_on_open or not self.available:
            raise HardwareUnavailable("模拟设备打开失败")
        self.sample_rate = sample_rate
        self.is_open = True
        self.open_count += 1
        self._abort_event.clear()

    def close(self):
        self.abort()
        self.is_open = False

    def play_and_record(self, signal, frames):
        if not self.is_open:
            raise HardwareUnavailable("音频设备未打开")
        if self.fail_on_capture:
            raise HardwareUnavailable("模拟录音失败")

        signal = np.asarray(signal, dtype=np.float64)
        self.played.append(signal)

        if self.capture_time_s > 0 and self._abort_event.wait(self.capture_time_s):
            return np.zeros(0)

        recording = np.zeros(frames)
        if self.delay_samples is not None and self.delay_samples < frames:
            end = min(self.delay_samples + len(signal), frames)
            recording[self.delay_samples:end] += self.attenuation * signal[:end - self.delay_samples]
        if self.noise_level > 0:
            recording += self.rng.normal(0.0, self.noise_level, frames)
        return recording

    def abort(self):
        self._abort_event.set()
