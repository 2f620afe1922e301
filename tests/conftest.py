"""
Pytest configuration and shared fixtures for the ranging engine tests.
"""

import asyncio
import time
import uuid

import pytest

from chiroptera.audio_io import SimulatedAudioIO
from chiroptera.models import ChirpConfig, Direction, PingResult, SignalQuality
from chiroptera.session import SessionManager


SAMPLE_RATE = 44100
SPEED_OF_SOUND = 343.0


def run(coro):
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def make_ping(distance, confidence=0.9, direction=Direction.FORWARD,
              clarity=0.9, snr_db=-20.0, max_range=10.0):
    """Build a PingResult without touching audio."""
    return PingResult(
        id=uuid.uuid4().hex,
        timestamp=time.time(),
        direction=direction.normalized(),
        distance_meters=distance,
        confidence=confidence,
        time_of_flight_micros=distance * 2 / SPEED_OF_SOUND * 1_000_000,
        signal_quality=SignalQuality(
            peak_correlation=confidence / 2,
            signal_to_noise_ratio_db=snr_db,
            echo_clarity=clarity,
            noise_level_db=-snr_db,
            frequency_response=0.5,
        ),
        processing_time_ms=1.0,
        max_range_meters=max_range,
    )


@pytest.fixture
def scenario_config():
    """18-22 kHz, 100 ms chirp at 44.1 kHz."""
    return ChirpConfig(frequency_start=18000.0, frequency_end=22000.0,
                       duration_ms=100.0, sample_rate_hz=SAMPLE_RATE,
                       max_range_meters=5.0)


@pytest.fixture
def small_config():
    """Short low-rate chirp for fast randomized tests."""
    return ChirpConfig(frequency_start=1000.0, frequency_end=3000.0,
                       duration_ms=10.0, sample_rate_hz=16000,
                       max_range_meters=2.0)


@pytest.fixture
def echo_audio():
    """Simulated provider returning the chirp delayed by 127 samples, scaled by 0.3."""
    return SimulatedAudioIO(delay_samples=127, attenuation=0.3)


@pytest.fixture
def manager(echo_audio):
    return SessionManager(echo_audio)
