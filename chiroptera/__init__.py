# Core modules
from .models import (
    AggregatedMeasurement,
    Capabilities,
    ChirpConfig,
    Direction,
    PingResult,
    Session,
    SessionState,
    SignalQuality,
)
from .exceptions import (
    ChiropteraError,
    HardwareUnavailable,
    InvalidArgument,
    InvalidConfig,
    InvalidSession,
    NoActiveSession,
    NotInitialized,
    PingCancelled,
    PingInProgress,
)
from .config import RangingProfile, ReliabilityThresholds, get_preset
from .signal_processor import SignalProcessor, correlate, estimate_signal_quality, generate_chirp
from .audio_io import AudioIOProvider, SimulatedAudioIO, SoundDeviceAudioIO
from .ranging_engine import EchoAnalysis, RangingEngine
from .session import SessionManager
from .aggregator import Aggregator, aggregate

__all__ = [
    'AggregatedMeasurement',
    'Aggregator',
    'AudioIOProvider',
    'Capabilities',
    'ChirpConfig',
    'ChiropteraError',
    'Direction',
    'EchoAnalysis',
    'HardwareUnavailable',
    'InvalidArgument',
    'InvalidConfig',
    'InvalidSession',
    'NoActiveSession',
    'NotInitialized',
    'PingCancelled',
    'PingInProgress',
    'PingResult',
    'RangingEngine',
    'RangingProfile',
    'ReliabilityThresholds',
    'Session',
    'SessionManager',
    'SessionState',
    'SignalProcessor',
    'SignalQuality',
    'SimulatedAudioIO',
    'SoundDeviceAudioIO',
    'aggregate',
    'correlate',
    'estimate_signal_quality',
    'generate_chirp',
    'get_preset',
]
