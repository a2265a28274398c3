"""
Pydantic schemas for SlimGate.

SlimSettings is the frozen snapshot the argument builder reads.
RunParameters carries the per-call knobs that are never persisted.
"""

from __future__ import annotations
from enum import Enum
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field


OUTPUT_IMAGE_REPO = "slim-output"
OUTPUT_IMAGE_TAG = f"{OUTPUT_IMAGE_REPO}:latest"
OUTPUT_IMAGE_TAR = "output.tar"


class TriState(str, Enum):
    """Omission and explicit false mean different things to the engine."""
    UNSET = "unset"
    TRUE = "true"
    FALSE = "false"

    @classmethod
    def of(cls, value: Union[bool, "TriState", None]) -> "TriState":
        if isinstance(value, TriState):
            return value
        if value is None:
            return cls.UNSET
        return cls.TRUE if value else cls.FALSE

    @property
    def is_set(self) -> bool:
        return self is not TriState.UNSET

    def as_bool(self) -> Optional[bool]:
        if self is TriState.UNSET:
            return None
        return self is TriState.TRUE


class Mode(str, Enum):
    DOCKER = "docker"
    NATIVE = "native"


SUPPORTED_MODES = frozenset({Mode.DOCKER})


def normalize_mode(value: Union[str, Mode, None]) -> Mode:
    """Map any input onto a recognized mode; unknown and empty become docker."""
    if isinstance(value, Mode):
        return value
    raw = (value or "").strip().lower()
    for mode in Mode:
        if mode.value == raw:
            return mode
    return Mode.DOCKER


class SlimSettings(BaseModel):
    """Immutable configuration snapshot consumed by the argument builder."""
    model_config = ConfigDict(frozen=True)

    include_paths: tuple[str, ...] = ()
    include_bins: tuple[str, ...] = ()
    include_exes: tuple[str, ...] = ()
    preserve_paths: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()
    env_vars: tuple[str, ...] = ()
    exec_probes: tuple[str, ...] = ()
    http_probe_cmds: tuple[str, ...] = ()
    expose_ports: tuple[str, ...] = ()
    publish_ports: tuple[str, ...] = ()

    include_shell: TriState = TriState.UNSET
    include_new: TriState = TriState.UNSET
    include_zoneinfo: TriState = TriState.UNSET
    source_ptrace: TriState = TriState.UNSET

    sensor_ipc_mode: str = ""
    sensor_ipc_endpoint: str = ""
    image_build_engine: str = ""
    image_build_arch: str = ""

    # Runtime knobs; never rendered into engine arguments
    engine_image: str = ""
    daemon_image: str = "docker:dind"
    daemon_start_timeout: float = Field(default=60.0, gt=0)
    work_dir: Optional[str] = None
    output_tag: str = ""


class RunParameters(BaseModel):
    """Per-invocation parameters. Defaults follow the engine's own."""
    model_config = ConfigDict(frozen=True)

    mode: str = Field(
        default=Mode.DOCKER.value,
        description="Execution mode; only docker is supported"
    )
    probe_http: bool = Field(
        default=True,
        description="Run HTTP probes against the temporary container"
    )
    probe_http_exit_on_failure: bool = Field(
        default=True,
        description="Exit when all HTTP probe commands fail"
    )
    probe_http_ports: str = Field(
        default="",
        description="Comma separated subset of ports to probe"
    )
    publish_exposed_ports: bool = Field(
        default=True,
        description="Map all exposed ports to the same host ports"
    )
    continue_after: str = Field(
        default="",
        description="enter | signal | probe | exec | timeout-in-seconds | container.probe"
    )
    show_clogs: bool = Field(
        default=False,
        description="Show logs from the container used for dynamic inspection"
    )
    debug: bool = Field(
        default=False,
        description="Show debugging information"
    )


class ImageHandle(BaseModel):
    """Reference to an image in a Docker image store."""
    model_config = ConfigDict(frozen=True)

    ref: str
    image_id: Optional[str] = None

    def __str__(self) -> str:
        return self.ref
