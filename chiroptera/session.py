# -*- coding: utf-8 -*-
"""
测距会话管理
会话状态机：uninitialized -> initialized -> ready -> active -> completed，任意状态可进入 error
负责配置校验、硬件能力缓存、ping 计数，以及同一时刻只允许一次 ping
"""

import asyncio
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from .exceptions import (
    HardwareUnavailable,
    InvalidConfig,
    InvalidSession,
    NoActiveSession,
    NotInitialized,
    PingCancelled,
    PingInProgress,
)
from .models import SPEED_OF_SOUND, Session, SessionState
from .ranging_engine import RangingEngine

logger = logging.getLogger(__name__)

# 会话对象上可能出现的状态
SESSION_STATES = (SessionState.READY, SessionState.ACTIVE,
                  SessionState.COMPLETED, SessionState.ERROR)


class SessionManager:
    """会话管理器，独占音频IO提供者"""

    def __init__(self, audio, speed_of_sound=SPEED_OF_SOUND, bandpass=False, max_workers=2):
        """
        Args:
            audio: AudioIOProvider
            speed_of_sound: 声速 (m/s)
            bandpass: 互相关前是否做带通滤波
            max_workers: 线程池大小（音频IO和互相关计算）
        """
        self.audio = audio
        self.speed_of_sound = speed_of_sound
        self.bandpass = bandpass
        self.max_workers = max_workers

        self.state = SessionState.UNINITIALIZED
        self.config = None
        self.capabilities = None

        self._session: Optional[Session] = None
        self._engine: Optional[RangingEngine] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._ping_task: Optional[asyncio.Task] = None
        self._cancelled_pings = set()
        self._opening: Optional[asyncio.Future] = None

        # 回调函数
        self.on_state_changed: Optional[Callable] = None

    @property
    def session(self):
        """当前会话，没有会话时为 None"""
        return self._session

    @property
    def engine(self):
        return self._engine

    def _set_state(self, new_state):
        if new_state is self.state:
            return
        logger.debug("会话状态: %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        # 会话状态只前进，不会回到 uninitialized/initialized
        if self._session is not None and new_state in SESSION_STATES:
            self._session.state = new_state
        if self.on_state_changed:
            self.on_state_changed(new_state)

    def _fail(self, exc):
        """硬件故障：进入 error 状态，释放设备并结束当前会话，不自动重试"""
        logger.error("硬件故障: %s", exc)
        self._set_state(SessionState.ERROR)
        self.audio.close()

        session = self._session
        if session is not None:
            session.end_time = time.time()
            logger.info("会话因硬件故障结束: %s, 共 %d 次测距",
                        session.session_id, session.ping_count)
        self._session = None
        self._engine = None

    def _get_executor(self):
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers,
                                                thread_name_prefix='chiroptera')
        return self._executor

    def validate_configuration(self, config):
        """
        校验频率与采样率规则，供界面层在 initialize 前预检

        Returns:
            bool: 配置是否合法
        """
        try:
            config.validate()
        except InvalidConfig:
            return False
        return True

    def _check_compatibility(self, config, capabilities):
        if not capabilities.is_compatible_with(config):
            raise InvalidConfig(
                f"硬件不支持该配置: 采样率 {config.sample_rate_hz}Hz "
                f"(支持 {capabilities.min_sample_rate}-{capabilities.max_sample_rate}Hz), "
                f"超声支持={capabilities.supports_ultrasonic}")

    def get_capabilities(self):
        """
        获取硬件能力，已初始化时返回缓存

        Raises:
            HardwareUnavailable: 无法访问音频设备
        """
        if self.capabilities is not None:
            return self.capabilities
        return self.audio.query_capabilities()

    def is_available(self):
        """同时存在输入、输出设备且引擎已初始化"""
        if self.capabilities is None or self.state in (SessionState.UNINITIALIZED, SessionState.ERROR):
            return False
        return (self.capabilities.has_audio_input
                and self.capabilities.has_audio_output
                and self.audio.is_available())

    async def initialize(self, config):
        """
        校验配置并查询硬件能力

        重复调用时直接返回缓存的能力，不会重新获取硬件

        Args:
            config: ChirpConfig

        Returns:
            Capabilities

        Raises:
            InvalidConfig: 配置不合法或硬件不支持
            HardwareUnavailable: 查询硬件失败，状态进入 error
        """
        # 触碰硬件之前同步校验
        config.validate()

        if self.state in (SessionState.READY, SessionState.ACTIVE):
            if config != self.config:
                raise InvalidConfig("会话进行中不能修改配置")
            return self.capabilities

        if self.capabilities is None or self.state is SessionState.ERROR:
            loop = asyncio.get_running_loop()
            try:
                capabilities = await loop.run_in_executor(
                    self._get_executor(), self.audio.query_capabilities)
            except HardwareUnavailable as exc:
                self._fail(exc)
                raise
            self.capabilities = capabilities

        self._check_compatibility(config, self.capabilities)
        self.config = config
        self._set_state(SessionState.INITIALIZED)
        logger.info("初始化完成: %.0f-%.0fHz, %.0fms, %dHz",
                    config.frequency_start, config.frequency_end,
                    config.duration_ms, config.sample_rate_hz)
        return self.capabilities

    def _session_info(self):
        session = self._session
        return {
            'sessionId': session.session_id,
            'startTime': session.start_time,
            'state': session.state.value,
            'capabilities': session.capabilities.to_dict(),
        }

    async def start_session(self, config=None):
        """
        开始新的测距会话：生成会话ID，ping 计数归零，打开音频设备

        Args:
            config: 可选的新配置，需通过校验

        Returns:
            dict: sessionId、startTime、state、capabilities

        Raises:
            NotInitialized: 尚未 initialize，或硬件故障后需要重新 initialize
            HardwareUnavailable: 打开音频设备失败
        """
        if self.state in (SessionState.UNINITIALIZED, SessionState.ERROR) or self.config is None:
            raise NotInitialized("请先调用 initialize")

        if self.state is SessionState.ACTIVE:
            return self._session_info()

        if self.state is SessionState.READY and self._opening is not None:
            # 另一个调用正在打开设备，等待同一个会话就绪
            await asyncio.shield(self._opening)
            if self.state is not SessionState.ACTIVE:
                raise HardwareUnavailable("会话启动失败，请重新 initialize")
            return self._session_info()

        if config is not None and config != self.config:
            config.validate()
            self._check_compatibility(config, self.capabilities)
            self.config = config

        self._session = Session(
            session_id=uuid.uuid4().hex,
            config=self.config,
            capabilities=self.capabilities,
            start_time=time.time(),
        )
        self._set_state(SessionState.READY)

        loop = asyncio.get_running_loop()
        executor = self._get_executor()
        opening = loop.create_future()
        self._opening = opening
        try:
            await loop.run_in_executor(executor, self.audio.open, self.config.sample_rate_hz)
        except HardwareUnavailable as exc:
            self._fail(exc)
            raise
        else:
            self._engine = RangingEngine(self.config, self.audio, executor=executor,
                                         speed_of_sound=self.speed_of_sound,
                                         bandpass=self.bandpass)
            self._set_state(SessionState.ACTIVE)
        finally:
            self._opening = None
            opening.set_result(None)

        logger.info("会话开始: %s", self._session.session_id)
        return self._session_info()

    async def perform_ping(self, direction=None, max_range=None):
        """
        在活动会话中执行一次测距

        Raises:
            NoActiveSession: 没有活动会话
            PingInProgress: 上一次 ping 尚未完成
            PingCancelled: ping 过程中会话被停止
            HardwareUnavailable: 播放/录音失败，状态进入 error
        """
        if self.state is not SessionState.ACTIVE or self._session is None:
            raise NoActiveSession("没有活动的测距会话")
        if self._ping_task is not None and not self._ping_task.done():
            raise PingInProgress("上一次测距尚未完成")

        session = self._session
        task = asyncio.ensure_future(self._engine.perform_ping(direction, max_range))
        self._ping_task = task
        try:
            result = await task
        except asyncio.CancelledError:
            if task in self._cancelled_pings:
                self._cancelled_pings.discard(task)
                raise PingCancelled("会话已停止，本次测距结果已丢弃") from None
            raise
        except HardwareUnavailable as exc:
            self._fail(exc)
            raise
        finally:
            if self._ping_task is task:
                self._ping_task = None

        session.ping_count += 1
        if result.has_echo and result.is_distance_valid:
            session.successful_pings += 1
        return result

    async def _cancel_ping(self):
        """中断进行中的 ping，不等待录音窗口结束"""
        task = self._ping_task
        if task is None or task.done():
            return
        self._cancelled_pings.add(task)
        task.cancel()
        self.audio.abort()
        await asyncio.wait({task})

    async def stop_session(self, session_id):
        """
        结束会话并释放音频设备

        Args:
            session_id: start_session 返回的会话ID

        Returns:
            dict: sessionId、endTime、duration、totalPings、successfulPings、state

        Raises:
            InvalidSession: 会话ID与当前会话不匹配，或会话已因硬件故障结束
        """
        session = self._session
        if session is None or session_id != session.session_id:
            raise InvalidSession(f"会话ID不匹配: {session_id!r}")

        await self._cancel_ping()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._get_executor(), self.audio.close)

        session.end_time = time.time()
        if self.state is not SessionState.ERROR:
            self._set_state(SessionState.COMPLETED)
        self._engine = None
        self._session = None
        logger.info("会话结束: %s, 共 %d 次测距", session.session_id, session.ping_count)

        return {
            'sessionId': session.session_id,
            'endTime': session.end_time,
            'duration': session.duration_s,
            'totalPings': session.ping_count,
            'successfulPings': session.successful_pings,
            'state': session.state.value,
        }

    async def cleanup(self):
        """释放所有硬件资源，任何时候都可以调用，可重复调用"""
        await self._cancel_ping()
        self.audio.close()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

        self._engine = None
        self._session = None
        self.config = None
        self.capabilities = None
        self._cancelled_pings.clear()
        self._set_state(SessionState.UNINITIALIZED)
