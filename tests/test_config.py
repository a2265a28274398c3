"""
Tests for the configuration builder, schemas and YAML loading.
"""

import pytest
from pydantic import ValidationError

from slimgate.config import (
    SlimConfig, config_from_mapping, dump_config, load_config, settings_to_mapping,
)
from slimgate.errors import ConfigurationError
from slimgate.schemas import Mode, RunParameters, SlimSettings, TriState, normalize_mode


class TestBuilder:

    def test_mutators_chain(self):
        config = SlimConfig()
        assert config.with_include_path("/a") is config
        assert config.with_include_shell(True) is config
        assert config.with_sensor_ipc_mode("proxy") is config

    def test_lists_accumulate(self):
        settings = SlimConfig().with_env("A=1").with_env("B=2").with_env("A=1").freeze()
        assert settings.env_vars == ("A=1", "B=2", "A=1")

    def test_scalars_and_tristates_overwrite(self):
        settings = (
            SlimConfig()
            .with_image_build_arch("amd64")
            .with_image_build_arch("arm64")
            .with_include_new(True)
            .with_include_new(False)
            .freeze()
        )
        assert settings.image_build_arch == "arm64"
        assert settings.include_new is TriState.FALSE

    def test_tristate_can_be_reset(self):
        settings = SlimConfig().with_include_shell(True).with_include_shell(None).freeze()
        assert settings.include_shell is TriState.UNSET

    def test_no_validation_on_values(self):
        settings = SlimConfig().with_publish_port("not-a-port").freeze()
        assert settings.publish_ports == ("not-a-port",)

    def test_freeze_is_a_snapshot(self):
        config = SlimConfig().with_include_path("/etc/ssl")
        settings = config.freeze()
        config.with_include_path("/late")
        assert settings.include_paths == ("/etc/ssl",)

    def test_frozen_settings_reject_assignment(self):
        settings = SlimConfig().freeze()
        with pytest.raises(ValidationError):
            settings.include_paths = ("/x",)


class TestSchemas:

    @pytest.mark.parametrize("raw,expected", [
        ("docker", Mode.DOCKER),
        ("", Mode.DOCKER),
        (None, Mode.DOCKER),
        ("unknown", Mode.DOCKER),
        ("DOCKER", Mode.DOCKER),
        ("native", Mode.NATIVE),
    ])
    def test_normalize_mode(self, raw, expected):
        assert normalize_mode(raw) is expected

    def test_tristate_of(self):
        assert TriState.of(None) is TriState.UNSET
        assert TriState.of(True) is TriState.TRUE
        assert TriState.of(False) is TriState.FALSE
        assert TriState.FALSE.as_bool() is False
        assert TriState.UNSET.as_bool() is None

    def test_run_parameter_defaults(self):
        params = RunParameters()
        assert params.mode == "docker"
        assert params.probe_http is True
        assert params.probe_http_exit_on_failure is True
        assert params.publish_exposed_ports is True
        assert params.show_clogs is False
        assert params.debug is False
        assert params.probe_http_ports == ""
        assert params.continue_after == ""


class TestConfigFiles:

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "slim.yaml"
        path.write_text(
            "include_paths:\n  - /etc/ssl\n  - /etc/passwd\n"
            "publish_ports: '8080:8080'\n"
            "include_shell: false\n"
            "include_new: null\n"
            "sensor_ipc_mode: proxy\n"
            "engine_image: local/mint\n"
        )
        settings = load_config(path).freeze()
        assert settings.include_paths == ("/etc/ssl", "/etc/passwd")
        assert settings.publish_ports == ("8080:8080",)
        assert settings.include_shell is TriState.FALSE
        assert settings.include_new is TriState.UNSET
        assert settings.sensor_ipc_mode == "proxy"
        assert settings.engine_image == "local/mint"

    def test_empty_file_is_default(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path).freeze() == SlimSettings()

    def test_env_var_used_when_no_path(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("include_bins: /bin/sh\n")
        monkeypatch.setenv("SLIMGATE_CONFIG", str(path))
        assert load_config().freeze().include_bins == ("/bin/sh",)

    def test_no_path_no_env_is_empty(self):
        assert load_config().freeze() == SlimSettings()

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigurationError, match="includ_paths"):
            config_from_mapping({"includ_paths": ["/x"]})

    def test_bad_tristate_rejected(self):
        with pytest.raises(ConfigurationError):
            config_from_mapping({"include_shell": "yes"})

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("include_paths: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_mapping_appends_onto_existing_builder(self):
        config = SlimConfig().with_include_path("/first")
        config_from_mapping({"include_paths": ["/second"]}, config)
        assert config.freeze().include_paths == ("/first", "/second")

    def test_dump_then_load(self, tmp_path):
        settings = (
            SlimConfig()
            .with_include_path("/etc/ssl")
            .with_include_zoneinfo(False)
            .with_output_tag("app:slim")
            .freeze()
        )
        assert settings_to_mapping(settings) == {
            "include_paths": ["/etc/ssl"],
            "include_zoneinfo": False,
            "output_tag": "app:slim",
        }
        path = dump_config(settings, tmp_path / "out" / "slim.yaml")
        assert load_config(path).freeze() == settings

    def test_scalar_for_list_key(self, tmp_path):
        path = tmp_path / "ports.yaml"
        path.write_text("expose_ports: 8080\npublish_ports: [8080, \"9090:90\"]\n")
        settings = load_config(path).freeze()
        assert settings.expose_ports == ("8080",)
        assert settings.publish_ports == ("8080", "9090:90")

    def test_mapping_for_list_key_rejected(self):
        with pytest.raises(ConfigurationError, match="expose_ports"):
            config_from_mapping({"expose_ports": {"http": 80}})
