"""
Configuration Builder

Settings accumulate through chainable with_* calls. Nothing is validated
here: a malformed port is accepted and only surfaces when the engine
rejects it. freeze() hands out the immutable SlimSettings snapshot.

Config files are YAML mappings keyed by field name.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigurationError
from .schemas import SlimSettings, TriState

CONFIG_ENV_VAR = "SLIMGATE_CONFIG"

LIST_FIELDS = (
    "include_paths",
    "include_bins",
    "include_exes",
    "preserve_paths",
    "exclude_patterns",
    "env_vars",
    "exec_probes",
    "http_probe_cmds",
    "expose_ports",
    "publish_ports",
)

TRISTATE_FIELDS = (
    "include_shell",
    "include_new",
    "include_zoneinfo",
    "source_ptrace",
)

SCALAR_FIELDS = (
    "sensor_ipc_mode",
    "sensor_ipc_endpoint",
    "image_build_engine",
    "image_build_arch",
    "engine_image",
    "daemon_image",
    "daemon_start_timeout",
    "work_dir",
    "output_tag",
)


class SlimConfig:
    """Mutable builder for SlimSettings.

    A builder belongs to one caller. minify() freezes it before any
    argument is rendered, so mutating it afterwards cannot touch a run
    that is already in flight.
    """

    def __init__(self):
        self._lists: Dict[str, List[str]] = {name: [] for name in LIST_FIELDS}
        self._tristates: Dict[str, TriState] = {name: TriState.UNSET for name in TRISTATE_FIELDS}
        self._scalars: Dict[str, Any] = {}

    def _append(self, name: str, val: str) -> "SlimConfig":
        self._lists[name].append(val)
        return self

    def _tri(self, name: str, val: Optional[bool]) -> "SlimConfig":
        self._tristates[name] = TriState.of(val)
        return self

    def _set(self, name: str, val: Any) -> "SlimConfig":
        self._scalars[name] = val
        return self

    # Engine options

    def with_include_path(self, val: str) -> "SlimConfig":
        return self._append("include_paths", val)

    def with_include_bin(self, val: str) -> "SlimConfig":
        return self._append("include_bins", val)

    def with_include_exe(self, val: str) -> "SlimConfig":
        return self._append("include_exes", val)

    def with_include_shell(self, val: Optional[bool]) -> "SlimConfig":
        return self._tri("include_shell", val)

    def with_include_new(self, val: Optional[bool]) -> "SlimConfig":
        return self._tri("include_new", val)

    def with_include_zoneinfo(self, val: Optional[bool]) -> "SlimConfig":
        return self._tri("include_zoneinfo", val)

    def with_preserve_path(self, val: str) -> "SlimConfig":
        return self._append("preserve_paths", val)

    def with_exclude_pattern(self, val: str) -> "SlimConfig":
        return self._append("exclude_patterns", val)

    def with_env(self, val: str) -> "SlimConfig":
        return self._append("env_vars", val)

    def with_sensor_ipc_mode(self, val: str) -> "SlimConfig":
        return self._set("sensor_ipc_mode", val)

    def with_sensor_ipc_endpoint(self, val: str) -> "SlimConfig":
        return self._set("sensor_ipc_endpoint", val)

    def with_source_ptrace(self, val: Optional[bool]) -> "SlimConfig":
        return self._tri("source_ptrace", val)

    def with_image_build_engine(self, val: str) -> "SlimConfig":
        return self._set("image_build_engine", val)

    def with_image_build_arch(self, val: str) -> "SlimConfig":
        return self._set("image_build_arch", val)

    def with_exec_probe(self, val: str) -> "SlimConfig":
        return self._append("exec_probes", val)

    def with_http_probe_cmd(self, val: str) -> "SlimConfig":
        return self._append("http_probe_cmds", val)

    def with_expose_port(self, val: str) -> "SlimConfig":
        return self._append("expose_ports", val)

    def with_publish_port(self, val: str) -> "SlimConfig":
        return self._append("publish_ports", val)

    # Runtime options

    def with_engine_image(self, val: str) -> "SlimConfig":
        return self._set("engine_image", val)

    def with_daemon_image(self, val: str) -> "SlimConfig":
        return self._set("daemon_image", val)

    def with_daemon_start_timeout(self, val: float) -> "SlimConfig":
        return self._set("daemon_start_timeout", val)

    def with_work_dir(self, val: Union[str, Path]) -> "SlimConfig":
        return self._set("work_dir", str(val))

    def with_output_tag(self, val: str) -> "SlimConfig":
        return self._set("output_tag", val)

    def freeze(self) -> SlimSettings:
        """Snapshot the current state as an immutable SlimSettings."""
        values: Dict[str, Any] = {name: tuple(items) for name, items in self._lists.items()}
        values.update(self._tristates)
        values.update({k: v for k, v in self._scalars.items() if v is not None})
        return SlimSettings(**values)


# Mutator used to replay each config-file key
_MUTATORS = {
    "include_paths": SlimConfig.with_include_path,
    "include_bins": SlimConfig.with_include_bin,
    "include_exes": SlimConfig.with_include_exe,
    "preserve_paths": SlimConfig.with_preserve_path,
    "exclude_patterns": SlimConfig.with_exclude_pattern,
    "env_vars": SlimConfig.with_env,
    "exec_probes": SlimConfig.with_exec_probe,
    "http_probe_cmds": SlimConfig.with_http_probe_cmd,
    "expose_ports": SlimConfig.with_expose_port,
    "publish_ports": SlimConfig.with_publish_port,
    "include_shell": SlimConfig.with_include_shell,
    "include_new": SlimConfig.with_include_new,
    "include_zoneinfo": SlimConfig.with_include_zoneinfo,
    "source_ptrace": SlimConfig.with_source_ptrace,
    "sensor_ipc_mode": SlimConfig.with_sensor_ipc_mode,
    "sensor_ipc_endpoint": SlimConfig.with_sensor_ipc_endpoint,
    "image_build_engine": SlimConfig.with_image_build_engine,
    "image_build_arch": SlimConfig.with_image_build_arch,
    "engine_image": SlimConfig.with_engine_image,
    "daemon_image": SlimConfig.with_daemon_image,
    "daemon_start_timeout": SlimConfig.with_daemon_start_timeout,
    "work_dir": SlimConfig.with_work_dir,
    "output_tag": SlimConfig.with_output_tag,
}

FIELD_ORDER = LIST_FIELDS + TRISTATE_FIELDS + SCALAR_FIELDS


def config_from_mapping(data: Dict[str, Any], config: Optional[SlimConfig] = None) -> SlimConfig:
    """Replay a mapping through the with_* mutators in a fixed field order."""
    unknown = sorted(set(data) - set(FIELD_ORDER))
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {', '.join(unknown)}")

    config = config or SlimConfig()
    for name in FIELD_ORDER:
        if name not in data:
            continue
        value = data[name]
        mutate = _MUTATORS[name]
        if name in LIST_FIELDS:
            if value is None:
                continue
            if isinstance(value, dict):
                raise ConfigurationError(f"{name} must be a value or a list of values, got a mapping")
            items = list(value) if isinstance(value, (list, tuple)) else [value]
            for item in items:
                mutate(config, str(item))
        elif name in TRISTATE_FIELDS:
            if value is not None and not isinstance(value, bool):
                raise ConfigurationError(f"{name} must be true, false or null, got {value!r}")
            mutate(config, value)
        elif value is not None:
            mutate(config, value)
    return config


def load_config(path: Optional[Union[str, Path]] = None) -> SlimConfig:
    """
    Load a SlimConfig from a YAML file.

    Falls back to $SLIMGATE_CONFIG when no path is given, and to an
    empty builder when neither is set.
    """
    if path is None:
        raw_env = os.environ.get(CONFIG_ENV_VAR, "").strip()
        if not raw_env:
            return SlimConfig()
        path = raw_env

    config_path = Path(os.path.expandvars(os.path.expanduser(str(path))))
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file must contain a YAML mapping: {config_path}")
    return config_from_mapping(data)


def settings_to_mapping(settings: SlimSettings) -> Dict[str, Any]:
    """Inverse of config_from_mapping: only non-default fields are kept."""
    defaults = SlimSettings()
    data: Dict[str, Any] = {}
    for name in FIELD_ORDER:
        value = getattr(settings, name)
        if value == getattr(defaults, name):
            continue
        if name in LIST_FIELDS:
            data[name] = list(value)
        elif name in TRISTATE_FIELDS:
            data[name] = value.as_bool()
        else:
            data[name] = value
    return data


def dump_config(settings: SlimSettings, path: Union[str, Path]) -> Path:
    """Write settings as a YAML config file."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w", encoding="utf-8") as f:
        yaml.safe_dump(settings_to_mapping(settings), f, default_flow_style=False, sort_keys=False)
    return out
