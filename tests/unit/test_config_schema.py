"""Tests for Pydantic config schema validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from xhe import config as config_module
from xhe.config_schema import (
    AppConfig,
    KernelConfig,
    StorageConfig,
    load_validated_config,
    validate_config_dict,
)


REPO_CONFIG = Path(__file__).parent.parent.parent / "config" / "config.yaml"


class TestValidConfig:
    """Test that valid configs are accepted."""

    def test_empty_config_uses_defaults(self) -> None:
        """Empty config should use all defaults."""
        config = validate_config_dict({})
        assert config.kernel.genesis_balance == 100
        assert config.kernel.sequence_width == 8
        assert config.storage.key_prefix == "xhe_kernel_"
        assert config.feeds.default_limit == 50
        assert config.journal.enabled is True

    def test_partial_config_merges_defaults(self) -> None:
        """Partial config should merge with defaults."""
        config = validate_config_dict({"kernel": {"genesis_balance": 5}})
        assert config.kernel.genesis_balance == 5
        assert config.kernel.version == "1.0.0"  # Default

    def test_repo_config_loads(self) -> None:
        """The shipped config file should load without errors."""
        config = load_validated_config(REPO_CONFIG)
        assert config.kernel.genesis_balance == 100
        assert config.storage.backend == "sqlite"

    def test_empty_file_is_valid(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_validated_config(path) == AppConfig()


class TestInvalidConfig:
    """Test that invalid configs are rejected with clear errors."""

    def test_typo_in_key_rejected(self) -> None:
        """Typos in config keys should be rejected (extra='forbid')."""
        with pytest.raises(ValidationError) as exc_info:
            validate_config_dict({"kernal": {"genesis_balance": 100}})
        assert "kernal" in str(exc_info.value)

    def test_wrong_type_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_config_dict({"kernel": {"genesis_balance": "lots"}})
        assert "genesis_balance" in str(exc_info.value)

    def test_negative_genesis_rejected(self) -> None:
        with pytest.raises(ValidationError):
            KernelConfig(genesis_balance=-1)

    def test_blank_version_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            KernelConfig(version="  ")
        assert "must not be blank" in str(exc_info.value)

    def test_unknown_backend_rejected(self) -> None:
        with pytest.raises(ValidationError):
            StorageConfig(backend="postgres")

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_validated_config(tmp_path / "missing.yaml")


class TestConfigModule:
    """Global config access in xhe.config."""

    @pytest.fixture(autouse=True)
    def fresh_config(self):
        config_module.reset_config()
        yield
        config_module.reset_config()

    def test_get_by_dot_path(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("kernel:\n  genesis_balance: 7\n", encoding="utf-8")
        config_module.load_config(path)
        assert config_module.get("kernel.genesis_balance") == 7
        assert config_module.get("kernel.missing", "fallback") == "fallback"
        assert config_module.get_validated_config().kernel.genesis_balance == 7

    def test_set_config_value_revalidates(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("{}\n", encoding="utf-8")
        config_module.load_config(path)

        config_module.set_config_value("storage.path", "other.db")
        assert config_module.get_validated_config().storage.path == "other.db"

        with pytest.raises(ValidationError):
            config_module.set_config_value("storage.backend", "postgres")

    def test_default_path_is_repo_config(self) -> None:
        assert config_module.DEFAULT_CONFIG_PATH.resolve() == REPO_CONFIG.resolve()
        assert config_module.get_validated_config().kernel.version == "1.0.0"

    def test_failed_load_raises_runtime_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Access fails loudly when loading leaves nothing installed."""
        monkeypatch.setattr(config_module, "load_config", lambda config_path=None: {})
        with pytest.raises(RuntimeError, match="Call load_config"):
            config_module.get_config()
        with pytest.raises(RuntimeError, match="Call load_config"):
            config_module.get_validated_config()

    def test_repo_config_id_widths(self) -> None:
        kernel = load_validated_config(REPO_CONFIG).kernel
        assert (kernel.tx_id_bytes, kernel.post_id_bytes, kernel.channel_id_bytes) == (8, 8, 6)
