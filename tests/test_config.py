"""
Tests for configuration system.

Tests YAML config loading, variable expansion, and path resolution.
"""

import pytest
from pathlib import Path
import yaml

from teachable.config import Config


@pytest.fixture
def sample_config_dict():
    """Create sample configuration dictionary."""
    return {
        'paths': {
            'data_root': './data',
            'models': '${paths.data_root}/models',
            'reports': '${paths.models}/reports'
        },
        'forest': {
            'num_trees': 25,
            'max_depth': 6,
            'model_file': '${paths.models}/forest.json'
        },
        'inference': {
            'top_k': 3
        }
    }


@pytest.fixture
def sample_config_file(tmp_path, sample_config_dict):
    """Create sample YAML config file."""
    config_path = tmp_path / "test_config.yaml"
    with open(config_path, 'w') as f:
        yaml.dump(sample_config_dict, f)
    return config_path


class TestConfigLoading:
    """Test configuration loading."""

    def test_load_from_file(self, sample_config_file):
        """Test loading config from YAML file."""
        config = Config(config_path=sample_config_file)

        assert config.get('forest.num_trees') == 25
        assert config.config_path == sample_config_file

    def test_load_from_dict(self, sample_config_dict):
        """Test loading config from dictionary."""
        config = Config(config_dict=sample_config_dict)

        assert config.get('inference.top_k') == 3
        assert config.config_path is None

    def test_default_config_has_forest_defaults(self):
        """Test the bundled default config."""
        config = Config()

        assert config.get('forest.num_trees') == 50
        assert config.get('forest.max_depth') == 10
        assert config.get('features.histogram_bins') == 4
        assert config.get('inference.top_k') == 5

    def test_invalid_config_path(self):
        """Test loading from invalid path."""
        with pytest.raises(FileNotFoundError):
            Config(config_path=Path("nonexistent_config.yaml"))

    def test_empty_file_gives_empty_config(self, tmp_path):
        """Test that an empty YAML file loads as an empty config."""
        config_path = tmp_path / "empty.yaml"
        config_path.write_text("")

        config = Config(config_path=config_path)
        assert config.get('forest.num_trees', 7) == 7


class TestVariableExpansion:
    """Test variable expansion in config."""

    def test_nested_reference_expansion(self, sample_config_dict):
        """Test ${paths.models} expanding through ${paths.data_root}."""
        config = Config(config_dict=sample_config_dict)

        model_file = config.get('forest.model_file')
        assert '${' not in model_file
        assert model_file.endswith('models/forest.json')
        assert 'data' in model_file

    def test_environment_variable_expansion(self, monkeypatch):
        """Test expansion of environment variables."""
        monkeypatch.setenv('TEACHABLE_DATA', '/srv/teachable')

        config = Config(config_dict={'paths': {'data_root': '${TEACHABLE_DATA}'}})
        assert config.get('paths.data_root') == '/srv/teachable'

    def test_missing_environment_variable_kept(self, monkeypatch):
        """Test that unknown references are left unexpanded."""
        monkeypatch.delenv('TEACHABLE_MISSING', raising=False)

        config = Config(config_dict={'value': '${TEACHABLE_MISSING}'})
        assert config.get('value') == '${TEACHABLE_MISSING}'

    def test_circular_reference_raises(self):
        """Test that mutually referring keys are rejected."""
        with pytest.raises(ValueError):
            Config(config_dict={'a': {'x': '${b.y}'}, 'b': {'y': '${a.x}'}})


class TestDotNotationAccess:
    """Test dot notation access to config values."""

    def test_nested_key_access(self, sample_config_file):
        """Test accessing nested keys with dot notation."""
        config = Config(config_path=sample_config_file)

        assert config.get('forest.max_depth') == 6

    def test_nonexistent_key(self, sample_config_file):
        """Test accessing nonexistent key."""
        config = Config(config_path=sample_config_file)

        assert config.get('nonexistent.key') is None
        assert config.get('nonexistent.key', default='fallback') == 'fallback'


class TestPathResolution:
    """Test path resolution in config."""

    def test_relative_paths_become_absolute(self, sample_config_dict):
        """Test resolution of relative paths."""
        config = Config(config_dict=sample_config_dict)

        for key in ('data_root', 'models', 'reports'):
            assert Path(config.get(f'paths.{key}')).is_absolute()

    def test_absolute_path_preservation(self, tmp_path):
        """Test that absolute paths are preserved."""
        absolute = str(tmp_path / 'absolute')
        config = Config(config_dict={'paths': {'absolute': absolute}})

        assert config.get('paths.absolute') == absolute


class TestConfigUpdates:
    """Test configuration updates."""

    def test_set_nested_value(self, sample_config_dict):
        """Test updating a nested value."""
        config = Config(config_dict=sample_config_dict)

        config.set('forest.num_trees', 100)
        assert config.get('forest.num_trees') == 100

    def test_set_creates_sections(self, sample_config_dict):
        """Test adding a key in a new section."""
        config = Config(config_dict=sample_config_dict)

        config.set('export.formats', ['csv'])
        assert config.get('export.formats') == ['csv']

    def test_deep_update_keeps_siblings(self, sample_config_dict):
        """Test that update merges nested sections."""
        config = Config(config_dict=sample_config_dict)

        config.update({'forest': {'max_depth': 3}})
        assert config.get('forest.max_depth') == 3
        assert config.get('forest.num_trees') == 25

    def test_save_round_trip(self, sample_config_file, tmp_path):
        """Test saving to a new file and reloading."""
        config = Config(config_path=sample_config_file)
        config.set('forest.num_trees', 11)

        output = tmp_path / "saved.yaml"
        config.save(output)

        assert Config(config_path=output).get('forest.num_trees') == 11

    def test_save_without_path_raises(self, sample_config_dict):
        """Test that a dict-built config needs an explicit output path."""
        config = Config(config_dict=sample_config_dict)

        with pytest.raises(ValueError):
            config.save()


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
