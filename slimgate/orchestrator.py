"""
Ephemeral Runtime Orchestrator

Drives one daemon session through

  INIT → DAEMON_STARTED → IMAGE_LOADED → IMAGE_RESOLVED
       → ENGINE_EXECUTED → EXPORTED → RELEASED

with FAILED reachable from every non-terminal state. The daemon is
released exactly once, in a finally block, whatever happens (including
KeyboardInterrupt). The orchestrator is strict: it raises and never
falls back. Fallback policy lives in pipeline.minify.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .errors import (
    DaemonError, DockerCommandError, EmptyRegistryError, EngineExecutionError,
    ExportError, LoadError,
)
from .output import log_info, log_released, log_stage, log_warn
from .runtime import ContainerRuntime, DaemonSession, LoadReport
from .schemas import ImageHandle, OUTPUT_IMAGE_TAG, OUTPUT_IMAGE_TAR


class OrchestratorState(str, Enum):
    INIT = "init"
    DAEMON_STARTED = "daemon_started"
    IMAGE_LOADED = "image_loaded"
    IMAGE_RESOLVED = "image_resolved"
    ENGINE_EXECUTED = "engine_executed"
    EXPORTED = "exported"
    RELEASED = "released"
    FAILED = "failed"


_S = OrchestratorState

TRANSITIONS = {
    _S.INIT: {_S.DAEMON_STARTED, _S.FAILED},
    _S.DAEMON_STARTED: {_S.IMAGE_LOADED, _S.FAILED},
    _S.IMAGE_LOADED: {_S.IMAGE_RESOLVED, _S.FAILED},
    _S.IMAGE_RESOLVED: {_S.ENGINE_EXECUTED, _S.FAILED},
    _S.ENGINE_EXECUTED: {_S.EXPORTED, _S.FAILED},
    _S.EXPORTED: {_S.RELEASED, _S.FAILED},
    _S.FAILED: {_S.RELEASED},
    _S.RELEASED: set(),
}

Selector = Callable[[List[str], LoadReport], str]


def select_target(visible: List[str], report: LoadReport) -> str:
    """Prefer what the load call reported; otherwise the lowest image id."""
    if report.refs:
        return report.refs[0]
    return sorted(visible)[0]


@dataclass
class RunOutcome:
    """Everything a successful orchestrator run produced."""
    output: ImageHandle
    target_ref: str
    args: List[str]
    engine_output: str = ""
    history: List[OrchestratorState] = field(default_factory=list)


class Orchestrator:
    """One-shot driver for a single ephemeral daemon session."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        engine_image: str,
        work_dir: Optional[str] = None,
        output_tag: str = "",
        selector: Optional[Selector] = None,
    ):
        self.runtime = runtime
        self.engine_image = engine_image
        self.work_dir = work_dir
        self.output_tag = output_tag
        self.selector = selector or select_target
        self.state = OrchestratorState.INIT
        self.history: List[OrchestratorState] = [OrchestratorState.INIT]
        self.session: Optional[DaemonSession] = None

    def _transition(self, target: OrchestratorState):
        if target not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} → {target.value}")
        self.state = target
        self.history.append(target)

    def run(self, source: ImageHandle, render_args: Callable[[str], List[str]]) -> RunOutcome:
        """
        Execute the full sequence against a fresh daemon.

        Args:
            source: Image in the host store to minify
            render_args: Builds the engine vector once the target ref is known

        Returns:
            RunOutcome with the re-imported output image

        Raises:
            DaemonError, LoadError, EmptyRegistryError,
            EngineExecutionError, ExportError
        """
        if self.state is not OrchestratorState.INIT:
            raise RuntimeError("Orchestrator instances are single-use")

        session = self.runtime.new_session(self.work_dir)
        self.session = session
        try:
            outcome = self._run(session, source, render_args)
        except BaseException:
            self._transition(OrchestratorState.FAILED)
            raise
        finally:
            try:
                self.runtime.stop_daemon(session)
            except Exception as e:
                # never let teardown replace the stage error
                log_warn(f"Daemon {session.session_id} release failed: {e}")
            self._transition(OrchestratorState.RELEASED)
            log_released(session.session_id)
        outcome.history = list(self.history)
        return outcome

    def _run(
        self,
        session: DaemonSession,
        source: ImageHandle,
        render_args: Callable[[str], List[str]],
    ) -> RunOutcome:
        log_stage("DAEMON", session.container_name)
        try:
            self.runtime.start_daemon(session)
        except (DockerCommandError, TimeoutError, OSError) as e:
            raise DaemonError(f"Could not start ephemeral daemon: {e}") from e
        self._transition(OrchestratorState.DAEMON_STARTED)

        log_stage("LOAD", source.ref)
        try:
            report = self.runtime.load_image(session, source)
        except (DockerCommandError, OSError) as e:
            raise LoadError(f"Daemon failed to load {source.ref}: {e}") from e
        self._transition(OrchestratorState.IMAGE_LOADED)

        log_stage("RESOLVE")
        try:
            visible = self.runtime.list_images(session)
        except (DockerCommandError, OSError) as e:
            raise LoadError(f"Could not list daemon images: {e}") from e
        if not visible:
            raise EmptyRegistryError(
                f"Load of {source.ref} reported success but the daemon has no images"
            )
        target = self.selector(visible, report)
        log_info(f"Target {target} ({len(visible)} image(s) in daemon)")
        self._transition(OrchestratorState.IMAGE_RESOLVED)

        args = render_args(target)
        log_stage("ENGINE", self.engine_image)
        try:
            run = self.runtime.run_engine(session, self.engine_image, args)
        except (DockerCommandError, OSError) as e:
            raise EngineExecutionError(f"Could not start engine: {e}") from e
        if not run.ok:
            raise EngineExecutionError(
                f"Engine exited with status {run.exit_code}",
                exit_code=run.exit_code,
                output=run.output,
            )
        self._transition(OrchestratorState.ENGINE_EXECUTED)

        log_stage("EXPORT", OUTPUT_IMAGE_TAG)
        archive = session.work_dir / OUTPUT_IMAGE_TAR
        try:
            self.runtime.save_image(session, OUTPUT_IMAGE_TAG, archive)
            output = self.runtime.import_image(archive)
            if self.output_tag:
                output = self.runtime.tag_image(output, self.output_tag)
        except (DockerCommandError, OSError) as e:
            raise ExportError(f"Could not retrieve {OUTPUT_IMAGE_TAG}: {e}") from e
        self._transition(OrchestratorState.EXPORTED)

        return RunOutcome(output=output, target_ref=target, args=args, engine_output=run.output)
