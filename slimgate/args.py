"""
Engine Argument Builder

Renders SlimSettings + RunParameters into the ordered token list passed
to the minification engine. Pure and deterministic: the engine parser
may be positional or last-wins for repeated flags, so order is fixed.
"""

from typing import List

from .schemas import OUTPUT_IMAGE_TAG, RunParameters, SlimSettings, TriState

CMD_SLIM = "slim"

FLAG_DEBUG = "--debug"
FLAG_TAG = "--tag"
FLAG_TARGET = "--target"

FLAG_SHOW_CLOGS = "--show-clogs"
FLAG_HTTP_PROBE = "--http-probe"
FLAG_HTTP_PROBE_CMD = "--http-probe-cmd"
FLAG_HTTP_PROBE_PORTS = "--http-probe-ports"
FLAG_HTTP_PROBE_EXIT_ON_FAILURE = "--http-probe-exit-on-failure"

FLAG_PUBLISH_PORT = "--publish-port"
FLAG_PUBLISH_EXPOSED_PORTS = "--publish-exposed-ports"

FLAG_EXEC_PROBE = "--exec"

FLAG_INCLUDE_PATH = "--include-path"
FLAG_INCLUDE_BIN = "--include-bin"
FLAG_INCLUDE_EXE = "--include-exe"
FLAG_INCLUDE_SHELL = "--include-shell"
FLAG_INCLUDE_NEW = "--include-new"
FLAG_INCLUDE_ZONEINFO = "--include-zoneinfo"
FLAG_PRESERVE_PATH = "--preserve-path"
FLAG_EXCLUDE_PATTERN = "--exclude-pattern"
FLAG_ENV = "--env"
FLAG_EXPOSE = "--expose"
FLAG_CONTINUE_AFTER = "--continue-after"

FLAG_SENSOR_IPC_MODE = "--sensor-ipc-mode"
FLAG_SENSOR_IPC_ENDPOINT = "--sensor-ipc-endpoint"

FLAG_RTA_SOURCE_PTRACE = "--rta-source-ptrace"
FLAG_IMAGE_BUILD_ENGINE = "--image-build-engine"
FLAG_IMAGE_BUILD_ARCH = "--image-build-arch"

# (flag, settings field) pairs, in emission order
LIST_FLAGS = (
    (FLAG_INCLUDE_PATH, "include_paths"),
    (FLAG_INCLUDE_BIN, "include_bins"),
    (FLAG_INCLUDE_EXE, "include_exes"),
    (FLAG_PRESERVE_PATH, "preserve_paths"),
    (FLAG_EXCLUDE_PATTERN, "exclude_patterns"),
    (FLAG_ENV, "env_vars"),
)

SCALAR_FLAGS = (
    (FLAG_SENSOR_IPC_MODE, "sensor_ipc_mode"),
    (FLAG_SENSOR_IPC_ENDPOINT, "sensor_ipc_endpoint"),
    (FLAG_IMAGE_BUILD_ARCH, "image_build_arch"),
    (FLAG_IMAGE_BUILD_ENGINE, "image_build_engine"),
)

TRISTATE_FLAGS = (
    (FLAG_RTA_SOURCE_PTRACE, "source_ptrace"),
    (FLAG_INCLUDE_ZONEINFO, "include_zoneinfo"),
    (FLAG_INCLUDE_NEW, "include_new"),
    (FLAG_INCLUDE_SHELL, "include_shell"),
)


def bool_token(value: bool) -> str:
    return "true" if value else "false"


def build_args(settings: SlimSettings, params: RunParameters, target: str) -> List[str]:
    """
    Build the engine argument vector.

    Args:
        settings: Frozen configuration snapshot
        params: Per-call run parameters (mode is not consulted here)
        target: Image reference as resolved inside the ephemeral daemon

    Returns:
        Ordered list of tokens, starting with the global flags
    """
    cargs: List[str] = []
    if params.debug:
        cargs.append(FLAG_DEBUG)

    cargs += [CMD_SLIM, FLAG_TAG, OUTPUT_IMAGE_TAG, FLAG_TARGET, target]

    if params.show_clogs:
        cargs.append(FLAG_SHOW_CLOGS)

    # false values are emitted too
    cargs += [FLAG_HTTP_PROBE, bool_token(params.probe_http)]
    cargs += [FLAG_HTTP_PROBE_EXIT_ON_FAILURE, bool_token(params.probe_http_exit_on_failure)]
    cargs += [FLAG_PUBLISH_EXPOSED_PORTS, bool_token(params.publish_exposed_ports)]

    if params.probe_http_ports:
        cargs += [FLAG_HTTP_PROBE_PORTS, params.probe_http_ports]

    for val in settings.expose_ports:
        cargs += [FLAG_EXPOSE, val]

    for val in settings.publish_ports:
        cargs += [FLAG_PUBLISH_PORT, val]

    for val in settings.http_probe_cmds:
        cargs += [FLAG_HTTP_PROBE_CMD, val]

    if settings.exec_probes:
        # TODO: pass every exec probe once the engine accepts repeated --exec
        cargs += [FLAG_EXEC_PROBE, settings.exec_probes[0]]

    for flag, field in LIST_FLAGS:
        for val in getattr(settings, field):
            cargs += [flag, val]

    if params.continue_after:
        cargs += [FLAG_CONTINUE_AFTER, params.continue_after]

    for flag, field in SCALAR_FLAGS:
        val = getattr(settings, field)
        if val:
            cargs += [flag, val]

    for flag, field in TRISTATE_FLAGS:
        state: TriState = getattr(settings, field)
        if state.is_set:
            cargs += [flag, state.value]

    return cargs
