"""
Unit tests for the data model: directions, quality scores and result helpers.
"""

import json

import pytest

from chiroptera.exceptions import InvalidArgument, InvalidConfig
from chiroptera.models import (
    AggregatedMeasurement,
    Capabilities,
    ChirpConfig,
    Direction,
    Session,
    SessionState,
    SignalQuality,
)

from conftest import make_ping


class TestDirection:

    def test_normalized(self):
        unit = Direction(3.0, 4.0, 0.0).normalized()

        assert unit.x == pytest.approx(0.6)
        assert unit.y == pytest.approx(0.8)
        assert unit.z == 0.0
        assert unit.magnitude == pytest.approx(1.0)

    @pytest.mark.parametrize("vector", [(0.0, 0.0, 0.0), (float('nan'), 0.0, 1.0)])
    def test_cannot_normalize(self, vector):
        with pytest.raises(InvalidArgument):
            Direction(*vector).normalized()

    @pytest.mark.parametrize("value,expected", [
        (None, Direction(0.0, 0.0, 1.0)),
        ((1, 2, 3), Direction(1.0, 2.0, 3.0)),
        ({'x': 1.0, 'z': -1.0}, Direction(1.0, 0.0, -1.0)),
        (Direction(0.0, 1.0, 0.0), Direction(0.0, 1.0, 0.0)),
    ])
    def test_from_value(self, value, expected):
        assert Direction.from_value(value) == expected

    @pytest.mark.parametrize("value", ["north", (1.0, 2.0), 5])
    def test_from_value_rejects_garbage(self, value):
        with pytest.raises(InvalidArgument):
            Direction.from_value(value)

    def test_key_groups_parallel_vectors(self):
        assert Direction(0.0, 0.0, 2.0).key() == Direction.FORWARD.key()
        assert Direction(1.0, 0.0, 0.0).key() != Direction.FORWARD.key()


class TestChirpConfig:

    def test_derived_values(self):
        config = ChirpConfig()

        assert config.num_samples == 4410
        assert config.duration_s == pytest.approx(0.1)
        assert config.nyquist_hz == 22050.0
        assert config.bandwidth_hz == 4000.0

    def test_upper_limit_follows_nyquist(self):
        ChirpConfig(18000.0, 22050.0, 100.0, 44100).validate()
        with pytest.raises(InvalidConfig):
            ChirpConfig(18000.0, 22051.0, 100.0, 44100).validate()
        with pytest.raises(InvalidConfig):
            ChirpConfig(18000.0, 24001.0, 100.0, 96000).validate()
        with pytest.raises(InvalidConfig):
            ChirpConfig(2000.0, 5000.0, 100.0, 8000).validate()

    def test_check_is_looser_than_validate(self):
        config = ChirpConfig(10.0, 50.0, 100.0, 1000)

        config.check()
        with pytest.raises(InvalidConfig):
            config.validate()


class TestSignalQuality:

    def test_clean_echo_scores_high(self):
        quality = SignalQuality(peak_correlation=0.85, signal_to_noise_ratio_db=25.0,
                                echo_clarity=0.9, noise_level_db=-25.0,
                                frequency_response=0.8)

        assert quality.snr_normalized == 1.0
        assert quality.overall_quality > 0.8

    def test_overall_quality_weights(self):
        quality = SignalQuality(0.3, -30.0, 0.5, 30.0, 0.5)

        assert quality.snr_normalized == pytest.approx(0.5)
        assert quality.overall_quality == pytest.approx(0.6 * 0.5 + 0.4 * 0.5)

    def test_no_signal(self):
        quality = SignalQuality.no_signal(0.5)

        assert quality.signal_to_noise_ratio_db == -60.0
        assert quality.noise_level_db == 60.0
        assert quality.overall_quality == 0.0


class TestPingResult:

    def test_estimated_accuracy(self):
        assert make_ping(1.0, confidence=1.0).estimated_accuracy == pytest.approx(0.05)
        assert make_ping(1.0, confidence=0.0).estimated_accuracy == pytest.approx(0.15)

    @pytest.mark.parametrize("distance,valid", [
        (0.05, False), (0.1, True), (5.0, True), (10.0, True), (10.5, False),
    ])
    def test_distance_validity(self, distance, valid):
        assert make_ping(distance, max_range=10.0).is_distance_valid is valid

    def test_has_echo(self):
        assert make_ping(1.0, confidence=0.2).has_echo
        assert not make_ping(1.0, confidence=0.0).has_echo

    def test_to_dict_is_json_ready(self):
        data = make_ping(1.5).to_dict()

        json.dumps(data)
        assert data['distanceMeters'] == 1.5
        assert data['direction'] == {'x': 0.0, 'y': 0.0, 'z': 1.0}
        assert set(data['signalQuality']) >= {'peakCorrelation', 'echoClarity', 'overallQuality'}


class TestCapabilities:

    def test_compatible(self):
        caps = Capabilities(supports_ultrasonic=True, min_sample_rate=8000, max_sample_rate=48000)

        assert caps.is_compatible_with(ChirpConfig())
        assert not caps.is_compatible_with(ChirpConfig(18000.0, 22000.0, 100.0, 96000))

    def test_ultrasonic_required_above_20k(self):
        caps = Capabilities(supports_ultrasonic=False)

        assert not caps.is_compatible_with(ChirpConfig(18000.0, 20500.0, 100.0, 44100))
        assert caps.is_compatible_with(ChirpConfig(16000.0, 20000.0, 100.0, 44100))

    def test_to_dict(self):
        data = Capabilities().to_dict()

        json.dumps(data)
        assert data['supportedFormats'] == ['float32']


class TestSession:

    def test_counters(self):
        session = Session('abc', ChirpConfig(), Capabilities(), start_time=100.0)

        assert session.is_active
        assert session.success_rate == 0.0
        assert session.duration_s is None

        session.ping_count, session.successful_pings = 4, 3
        session.end_time = 102.5
        session.state = SessionState.COMPLETED

        assert session.success_rate == 0.75
        assert session.duration_s == 2.5
        assert not session.is_active
        assert json.loads(json.dumps(session.to_dict()))['pingCount'] == 4


def test_aggregated_measurement_to_dict():
    measurement = AggregatedMeasurement(distance_meters=1.0, confidence=0.9, quality=0.8,
                                        standard_deviation=0.01, sample_count=3,
                                        direction=Direction.FORWARD)

    data = measurement.to_dict()

    json.dumps(data)
    assert data['isReliable'] is False
    assert data['contributingPings'] == []
