"""Tests for config/loader.py module.

Covers:
- load_build_config() field mapping from the flat camelCase file
- Precedence: kwargs > env vars > env-override table > file
- Error mapping for missing and invalid keys
"""

from __future__ import annotations

from pathlib import Path

import pytest

from gatewaygen.config.loader import load_build_config, load_config_store
from gatewaygen.core.errors import ConfigError, ErrorCode

BUILD_YAML = """\
packageRoot: example.com/gateway
idlRootDir: idl
targetGenDir: build
moduleSearchPaths:
  client: [clients/*]
  endpoint: [endpoints/*]
moduleIdlSubDir:
  client: clients
genMock: false
parallelizeFactor: 3
logging:
  level: DEBUG
parallelism:
  ioBound: true
"""


@pytest.fixture
def build_yaml(tmp_path: Path) -> Path:
    path = tmp_path / "build.yaml"
    path.write_text(BUILD_YAML)
    return path


class TestLoadBuildConfig:
    """Tests for load_build_config function."""

    def test_maps_camel_case_keys(self, build_yaml: Path) -> None:
        """Flat camelCase keys land on the build section."""
        config = load_build_config(build_yaml)

        assert config.build.package_root == "example.com/gateway"
        assert config.build.idl_root_dir == "idl"
        assert config.build.target_gen_dir == "build"
        assert config.build.module_search_paths == {"client": ["clients/*"], "endpoint": ["endpoints/*"]}
        assert config.build.module_idl_sub_dir == {"client": "clients"}
        assert config.build.parallelize_factor == 3

    def test_sections_are_split_out(self, build_yaml: Path) -> None:
        """logging and parallelism are their own sections."""
        config = load_build_config(build_yaml)

        assert config.logging.level == "DEBUG"
        assert config.parallelism.io_bound is True

    def test_config_dir_is_file_parent(self, build_yaml: Path) -> None:
        config = load_build_config(build_yaml)

        assert Path(config.build.config_dir) == build_yaml.parent.resolve()

    def test_defaults_applied(self, build_yaml: Path) -> None:
        config = load_build_config(build_yaml)

        assert config.build.annotation_prefix == "zanzibar"
        assert config.build.incremental_cache_file == ".gwgen-cache.json"
        assert config.build.formatters[".go"][0][0] == "gofmt"

    def test_kwargs_override_file(self, build_yaml: Path) -> None:
        """Keyword sections have the highest precedence."""
        config = load_build_config(build_yaml, build={"gen_mock": True})

        assert config.build.gen_mock is True
        assert config.build.package_root == "example.com/gateway"

    def test_env_vars_override_file(self, build_yaml: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """GATEWAYGEN__SECTION__KEY variables beat the file."""
        monkeypatch.setenv("GATEWAYGEN__BUILD__GEN_MOCK", "true")

        config = load_build_config(build_yaml)

        assert config.build.gen_mock is True

    def test_seed_overrides_file(self, build_yaml: Path) -> None:
        config = load_build_config(build_yaml, seed={"targetGenDir": "gen"})

        assert config.build.target_gen_dir == "gen"

    def test_env_override_table(self, tmp_path: Path) -> None:
        """envOverrides rows rewrite keys from the given environment."""
        path = tmp_path / "build.yaml"
        path.write_text(
            BUILD_YAML
            + "envOverrides:\n"
            + "  GW_TARGET:\n    key: targetGenDir\n    dataType: string\n"
            + "  GW_MOCK:\n    key: genMock\n    dataType: bool\n"
        )

        config = load_build_config(path, environ={"GW_TARGET": "out", "GW_MOCK": "yes"})

        assert config.build.target_gen_dir == "out"
        assert config.build.gen_mock is True

    def test_missing_required_key(self, tmp_path: Path) -> None:
        """A missing required key is CONFIG_MISSING_KEY naming the field."""
        path = tmp_path / "build.yaml"
        path.write_text("packageRoot: example.com/gateway\nidlRootDir: idl\nmoduleSearchPaths: {}\n")

        with pytest.raises(ConfigError) as exc_info:
            load_build_config(path)
        assert exc_info.value.code == ErrorCode.CONFIG_MISSING_KEY
        assert "target_gen_dir" in exc_info.value.details["key"]

    def test_invalid_value(self, tmp_path: Path) -> None:
        path = tmp_path / "build.yaml"
        path.write_text(BUILD_YAML.replace("parallelizeFactor: 3", "parallelizeFactor: 0"))

        with pytest.raises(ConfigError) as exc_info:
            load_build_config(path)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_VALUE

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_build_config(tmp_path / "absent.yaml")
        assert exc_info.value.code == ErrorCode.CONFIG_FILE_NOT_FOUND


class TestLoadConfigStore:
    """Tests for load_config_store function."""

    def test_store_is_frozen(self, build_yaml: Path) -> None:
        store = load_config_store(build_yaml)

        assert store.frozen
        assert store.get_string("packageRoot") == "example.com/gateway"
