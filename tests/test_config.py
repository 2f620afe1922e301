"""
Unit tests for presets and YAML profiles.
"""

import pytest
import yaml

from chiroptera.config import (
    PRESETS,
    RangingProfile,
    get_preset,
    load_profile,
    save_profile,
    speed_of_sound_at,
)
from chiroptera.exceptions import InvalidConfig
from chiroptera.models import ChirpConfig


class TestPresets:

    @pytest.mark.parametrize("name", sorted(PRESETS))
    def test_presets_are_valid(self, name):
        profile = get_preset(name)

        profile.chirp.validate()
        assert profile.name == name

    def test_indoor_is_shorter_and_stricter_than_outdoor(self):
        indoor = get_preset('indoor')
        outdoor = get_preset('outdoor')

        assert indoor.chirp.duration_ms < outdoor.chirp.duration_ms
        assert indoor.chirp.max_range_meters < outdoor.chirp.max_range_meters
        assert indoor.reliability.max_standard_deviation < outdoor.reliability.max_standard_deviation
        assert indoor.reliability.min_confidence > outdoor.reliability.min_confidence
        assert indoor.outlier_threshold is None
        assert outdoor.outlier_threshold == 3.0

    def test_default_matches_chirp_defaults(self):
        assert get_preset('default').chirp == ChirpConfig()

    def test_unknown_preset(self):
        with pytest.raises(InvalidConfig) as exc_info:
            get_preset('underwater')
        assert 'underwater' in exc_info.value.message


class TestProfileFiles:

    def test_round_trip(self, tmp_path):
        path = tmp_path / 'outdoor.yaml'
        save_profile(path, get_preset('outdoor'))

        assert load_profile(path) == get_preset('outdoor')

    def test_partial_override_keeps_preset_values(self, tmp_path):
        path = tmp_path / 'custom.yaml'
        path.write_text(yaml.safe_dump({
            'preset': 'indoor',
            'name': 'hallway',
            'chirp': {'max_range_meters': 8.0},
            'reliability': {'min_samples': 5},
            'speed_of_sound': 340,
        }), encoding='utf-8')

        profile = load_profile(path)
        indoor = get_preset('indoor')

        assert profile.name == 'hallway'
        assert profile.chirp.max_range_meters == 8.0
        assert profile.chirp.duration_ms == indoor.chirp.duration_ms
        assert profile.reliability.min_samples == 5
        assert profile.reliability.min_confidence == indoor.reliability.min_confidence
        assert profile.speed_of_sound == 340.0
        assert profile.window_size == indoor.window_size

    def test_empty_file_is_default(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text('', encoding='utf-8')

        assert load_profile(path) == RangingProfile()

    def test_unknown_field(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text(yaml.safe_dump({'chirp': {'frequency': 20000}}), encoding='utf-8')

        with pytest.raises(InvalidConfig):
            load_profile(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / 'list.yaml'
        path.write_text('- 1\n- 2\n', encoding='utf-8')

        with pytest.raises(InvalidConfig):
            load_profile(path)

    def test_unknown_preset_in_file(self, tmp_path):
        path = tmp_path / 'preset.yaml'
        path.write_text('preset: underwater\n', encoding='utf-8')

        with pytest.raises(InvalidConfig):
            load_profile(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidConfig) as exc_info:
            load_profile(tmp_path / 'absent.yaml')
        assert exc_info.value.code == 'INVALID_CONFIG'

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / 'broken.yaml'
        path.write_text('chirp: {frequency_start: [18000\n', encoding='utf-8')

        with pytest.raises(InvalidConfig):
            load_profile(path)


def test_speed_of_sound_at_temperature():
    assert speed_of_sound_at(0) == pytest.approx(331.3)
    assert speed_of_sound_at(20) == pytest.approx(343.2, abs=0.1)
    assert speed_of_sound_at(30) > speed_of_sound_at(10)
