"""Tests for config module."""

import pytest
from siftpair.config import (
    DEFAULT_CONFIG, ExtractionOptions, InvalidOptionsError, MatchingOptions,
    load_config, load_options, parse_gpu_indices, resolve_num_threads
)


class TestConfig:
    """Test configuration defaults."""

    def test_default_config_exists(self):
        """Test that default config exists."""
        assert isinstance(DEFAULT_CONFIG, dict)
        assert 'extraction' in DEFAULT_CONFIG
        assert 'matching' in DEFAULT_CONFIG

    def test_matching_defaults(self):
        """Test matching option defaults."""
        options = MatchingOptions()
        assert options.max_ratio == 0.8
        assert options.max_distance == 0.7
        assert options.cross_check is True
        assert options.max_num_matches == 32768
        assert options.max_error == 4.0
        assert options.confidence == 0.999
        assert options.min_num_trials == 30
        assert options.max_num_trials == 10000
        assert options.min_inlier_ratio == 0.25
        assert options.min_num_inliers == 15
        assert options.border == 0
        assert options.use_gpu is False

    def test_dataclass_defaults_match_dict(self):
        """Dataclass defaults and DEFAULT_CONFIG agree."""
        assert ExtractionOptions().to_dict() == DEFAULT_CONFIG['extraction']
        assert MatchingOptions().to_dict() == DEFAULT_CONFIG['matching']

    def test_options_immutable(self):
        """Options cannot be mutated after construction."""
        options = MatchingOptions()
        with pytest.raises(Exception):
            options.max_ratio = 0.5


class TestValidation:
    """Test pre-flight option checks."""

    @pytest.mark.parametrize("changes", [
        {'max_ratio': 0.0},
        {'max_ratio': 1.5},
        {'max_distance': -0.1},
        {'max_error': 0.0},
        {'confidence': 1.0},
        {'min_num_trials': 100, 'max_num_trials': 10},
        {'min_inlier_ratio': 0.0},
        {'border': -1},
        {'max_num_matches': 0},
        {'num_threads': 0},
        {'gpu_index': '0,x'},
        {'guided_max_ratio': 1.5},
    ])
    def test_invalid_matching_options(self, changes):
        """Malformed matching options fail the check."""
        with pytest.raises(InvalidOptionsError):
            MatchingOptions(**changes).check()

    def test_invalid_extraction_options(self):
        """Malformed extraction options fail the check."""
        with pytest.raises(InvalidOptionsError):
            ExtractionOptions(normalization="L3").check()
        with pytest.raises(InvalidOptionsError):
            ExtractionOptions(dsp_min_scale=4.0, dsp_max_scale=3.0).check()

    def test_valid_options_pass(self):
        """Defaults pass and check returns the options."""
        options = MatchingOptions()
        assert options.check() is options
        assert ExtractionOptions().check() is not None

    def test_invalid_options_error_is_value_error(self):
        assert issubclass(InvalidOptionsError, ValueError)

    def test_from_dict_unknown_key(self):
        """Unknown keys are rejected."""
        with pytest.raises(InvalidOptionsError):
            MatchingOptions.from_dict({'max_ration': 0.7})

    def test_from_dict_merges_defaults(self):
        options = MatchingOptions.from_dict({'max_ratio': 0.6})
        assert options.max_ratio == 0.6
        assert options.min_num_inliers == 15

    def test_parse_gpu_indices(self):
        assert parse_gpu_indices("-1") == [-1]
        assert parse_gpu_indices("0,1,2") == [0, 1, 2]
        with pytest.raises(InvalidOptionsError):
            parse_gpu_indices("-1,0")

    def test_resolve_num_threads(self):
        assert resolve_num_threads(3) == 3
        assert resolve_num_threads(-1) >= 1


class TestLoadConfig:
    """Test YAML configuration loading."""

    def test_load_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("matching:\n  max_ratio: 0.7\n  guided_matching: true\n")

        config = load_config(str(path))
        assert config['matching']['max_ratio'] == 0.7
        assert config['matching']['guided_matching'] is True
        assert config['extraction']['max_num_features'] == 8192

        extraction, matching = load_options(str(path))
        assert matching.max_ratio == 0.7
        assert extraction.normalization == "L1_ROOT"

    def test_load_config_unknown_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("mapping:\n  foo: 1\n")
        with pytest.raises(InvalidOptionsError):
            load_config(str(path))

    @pytest.mark.parametrize("content", [
        "- max_ratio\n- 0.7\n",
        "just text\n",
        "matching: 0.7\n",
        "extraction:\n  - upright\n",
    ])
    def test_load_config_not_a_mapping(self, tmp_path, content):
        """Top level and sections must be mappings."""
        path = tmp_path / "config.yaml"
        path.write_text(content)
        with pytest.raises(InvalidOptionsError):
            load_config(str(path))

    def test_load_options_validates(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("matching:\n  confidence: 2.0\n")
        with pytest.raises(InvalidOptionsError):
            load_options(str(path))
