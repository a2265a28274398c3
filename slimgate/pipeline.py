"""
SlimGate Pipeline — Entry Points

minify():  validate mode → freeze config → orchestrate → fallback policy
compare(): minify, then an inspection container with the original
           root filesystem at /before and the minified one at /after

Only an engine failure falls back (original image + error). Every other
failure hands back no image. Nothing is retried.
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Union

from .args import build_args
from .config import SlimConfig
from .errors import (
    ConfigurationError, DockerCommandError, EngineExecutionError, ExportError, SlimError,
)
from .ledger import append_to_ledger, generate_run_record
from .orchestrator import Orchestrator, Selector
from .output import (
    log_args, log_banner, log_engine_output, log_error, log_fallback,
    log_inspection, log_record_signed, log_result, log_stage, log_warn,
)
from .runtime import (
    AFTER_MOUNT, BEFORE_MOUNT, ContainerRuntime, DockerCliRuntime, default_engine_image,
)
from .schemas import (
    ImageHandle, RunParameters, SUPPORTED_MODES, SlimSettings, normalize_mode,
)


@dataclass
class MinifyResult:
    """Outcome of a minify call."""
    image: Optional[ImageHandle]
    error: Optional[SlimError] = None
    source: Optional[ImageHandle] = None
    args: List[str] = field(default_factory=list)
    target_ref: Optional[str] = None
    engine_output: str = ""
    record: Optional[dict] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def fell_back(self) -> bool:
        return isinstance(self.error, EngineExecutionError)

    @property
    def outcome(self) -> str:
        if self.ok:
            return "MINIFIED"
        return "FALLBACK" if self.fell_back else "FAILED"


@dataclass
class InspectionHandle:
    """Stopped container holding both root filesystems side by side."""
    container: str
    original: ImageHandle
    minified: ImageHandle
    before: str = BEFORE_MOUNT
    after: str = AFTER_MOUNT


@dataclass
class CompareResult:
    inspection: Optional[InspectionHandle]
    error: Optional[SlimError] = None
    minify: Optional[MinifyResult] = None


def _as_handle(image: Union[ImageHandle, str]) -> ImageHandle:
    if isinstance(image, ImageHandle):
        return image
    return ImageHandle(ref=str(image))


def _as_settings(config: Union[SlimConfig, SlimSettings, None]) -> SlimSettings:
    if config is None:
        return SlimSettings()
    if isinstance(config, SlimSettings):
        return config
    return config.freeze()


def _record(result: MinifyResult):
    image = result.image
    err = result.error
    record = generate_run_record(
        outcome=result.outcome,
        source=result.source.ref,
        source_id=result.source.image_id,
        output=image.ref if image else None,
        output_id=image.image_id if image else None,
        target_ref=result.target_ref,
        args=result.args,
        error_stage=err.stage if err else None,
        error=str(err) if err else None,
    )
    append_to_ledger(record)
    result.record = record
    log_record_signed(record["event_id"], record["chain_hash"])


def minify(
    image: Union[ImageHandle, str],
    config: Union[SlimConfig, SlimSettings, None] = None,
    params: Optional[RunParameters] = None,
    runtime: Optional[ContainerRuntime] = None,
    selector: Optional[Selector] = None,
    ledger: bool = True,
) -> MinifyResult:
    """
    Minify an image through an ephemeral daemon.

    Args:
        image: Source image in the host store
        config: Builder (frozen here) or an already frozen snapshot
        params: Per-call parameters; defaults match the engine's
        runtime: ContainerRuntime backend; docker CLI when omitted
        selector: Picks the target reference inside the daemon
        ledger: Append a signed provenance record

    Returns:
        MinifyResult. On engine failure, image is the untouched input.
    """
    source = _as_handle(image)
    params = params or RunParameters()
    result = MinifyResult(image=None, source=source)

    mode = normalize_mode(params.mode)
    log_banner(source.ref, mode.value)
    if mode not in SUPPORTED_MODES:
        result.error = ConfigurationError(f"unsupported mode - {mode.value}")
        log_error(str(result.error))
        if ledger:
            _record(result)
        return result

    settings = _as_settings(config)
    engine_image = settings.engine_image or default_engine_image()
    if not engine_image:
        result.error = ConfigurationError("No engine image for this architecture; set engine_image")
        log_error(str(result.error))
        if ledger:
            _record(result)
        return result

    if len(settings.exec_probes) > 1:
        log_warn(f"{len(settings.exec_probes)} exec probes configured; only the first is passed")

    def render(target: str) -> List[str]:
        args = build_args(settings, params, target)
        result.args = args
        result.target_ref = target
        if params.debug:
            log_args(args)
        return args

    runtime = runtime or DockerCliRuntime(
        daemon_image=settings.daemon_image,
        start_timeout=settings.daemon_start_timeout,
    )
    orchestrator = Orchestrator(
        runtime,
        engine_image=engine_image,
        work_dir=settings.work_dir,
        output_tag=settings.output_tag,
        selector=selector,
    )

    try:
        outcome = orchestrator.run(source, render)
    except EngineExecutionError as e:
        result.error = e
        result.image = source
        result.engine_output = e.output
        if e.output and (params.debug or params.show_clogs):
            log_engine_output(e.output)
        log_fallback(source.ref, str(e))
    except SlimError as e:
        result.error = e
        log_error(str(e))
    else:
        result.image = outcome.output
        result.engine_output = outcome.engine_output
        if params.debug:
            log_engine_output(outcome.engine_output)
        log_result(outcome.output.ref, outcome.output.image_id)

    if ledger:
        _record(result)
    return result


def compare(
    image: Union[ImageHandle, str],
    config: Union[SlimConfig, SlimSettings, None] = None,
    show_clogs: bool = False,
    debug: bool = False,
    params: Optional[RunParameters] = None,
    runtime: Optional[ContainerRuntime] = None,
    ledger: bool = True,
) -> CompareResult:
    """
    Minify, then stage both root filesystems for a human to diff.

    No fallback here: any minify error comes back unchanged with no
    inspection container. show_clogs and debug switch the matching
    flags on, also when params is given.
    """
    source = _as_handle(image)
    settings = _as_settings(config)
    params = params or RunParameters()
    params = params.model_copy(update={
        "show_clogs": params.show_clogs or show_clogs,
        "debug": params.debug or debug,
    })
    runtime = runtime or DockerCliRuntime(
        daemon_image=settings.daemon_image,
        start_timeout=settings.daemon_start_timeout,
    )

    minified = minify(source, settings, params, runtime=runtime, ledger=ledger)
    if minified.error is not None:
        return CompareResult(inspection=None, error=minified.error, minify=minified)

    name = f"slimgate-compare-{uuid.uuid4().hex[:12]}"
    log_stage("COMPARE", name)
    try:
        container = runtime.create_inspection(name)
    except (DockerCommandError, OSError) as e:
        error = ExportError(f"Could not create inspection container: {e}", stage="compare")
        log_error(str(error))
        return CompareResult(inspection=None, error=error, minify=minified)

    try:
        runtime.copy_rootfs(source, container, BEFORE_MOUNT)
        runtime.copy_rootfs(minified.image, container, AFTER_MOUNT)
    except (DockerCommandError, OSError) as e:
        runtime.remove_container(container)
        error = ExportError(f"Could not stage root filesystems: {e}", stage="compare")
        log_error(str(error))
        return CompareResult(inspection=None, error=error, minify=minified)

    log_inspection(container, source.ref, minified.image.ref)
    inspection = InspectionHandle(container=container, original=source, minified=minified.image)
    return CompareResult(inspection=inspection, error=None, minify=minified)
