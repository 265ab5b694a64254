"""Test configuration loading"""

from pathlib import Path

import pytest

from medialib.core.config import Config, load_config
from medialib.core.exceptions import ConfigError


def write_config(temp_dir: Path, text: str) -> Path:
    path = temp_dir / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    """Test load_config()"""

    def test_defaults_without_file(self, temp_dir, monkeypatch):
        """No config.yaml in the working directory means defaults"""
        monkeypatch.chdir(temp_dir)
        config = load_config()
        assert config == Config()
        assert config.sync.batch_size == 15
        assert config.sync.prune_missing is True
        assert config.matching.fold_traditional_chinese is False

    def test_missing_explicit_file(self, temp_dir):
        with pytest.raises(ConfigError) as exc_info:
            load_config(temp_dir / "nope.yaml")
        assert "not found" in exc_info.value.message

    def test_empty_file(self, temp_dir):
        assert load_config(write_config(temp_dir, "")) == Config()

    def test_values(self, temp_dir):
        path = write_config(temp_dir, """
library:
  database: "~/lib/test.db"
sync:
  batch_size: 5
  prune_missing: false
webdav:
  timeout: 10
matching:
  fold_traditional_chinese: true
logging:
  level: debug
""")
        config = load_config(path)
        assert config.library.database_path == Path("~/lib/test.db").expanduser().resolve()
        assert config.sync.batch_size == 5
        # max_workers follows batch_size unless given
        assert config.sync.max_workers == 5
        assert config.sync.prune_missing is False
        assert config.webdav.timeout == 10
        assert config.matching.fold_traditional_chinese is True
        assert config.logging.level == "DEBUG"

    def test_invalid_yaml(self, temp_dir):
        with pytest.raises(ConfigError):
            load_config(write_config(temp_dir, "sync: [unclosed"))

    def test_root_must_be_mapping(self, temp_dir):
        with pytest.raises(ConfigError):
            load_config(write_config(temp_dir, "- a\n- b\n"))

    @pytest.mark.parametrize("text,field", [
        ("sync:\n  batch_size: 0\n", "sync.batch_size"),
        ("sync:\n  batch_size: true\n", "sync.batch_size"),
        ("webdav:\n  timeout: -1\n", "webdav.timeout"),
        ("sync:\n  prune_missing: maybe\n", "sync.prune_missing"),
        ("logging:\n  level: LOUD\n", "logging.level"),
    ])
    def test_invalid_fields(self, temp_dir, text, field):
        """Invalid values name the offending field"""
        with pytest.raises(ConfigError) as exc_info:
            load_config(write_config(temp_dir, text))
        assert exc_info.value.details["field"] == field

    def test_section_must_be_mapping(self, temp_dir):
        with pytest.raises(ConfigError):
            load_config(write_config(temp_dir, "sync: 5\n"))

    def test_config_is_frozen(self):
        config = Config()
        with pytest.raises(AttributeError):
            config.sync = None
