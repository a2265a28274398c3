"""
SlimGate Error Taxonomy

Every failure surfaces with the stage it happened in.
Nothing here is retried; each error is terminal for its stage.
"""

from typing import Optional


class SlimError(Exception):
    """Base class for all SlimGate failures."""

    stage: str = "unknown"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {super().__str__()}"


class ConfigurationError(SlimError):
    """Unsupported mode, unknown config key, or no usable engine image."""
    stage = "configure"


class DaemonError(SlimError):
    """The ephemeral daemon could not be started."""
    stage = "daemon"


class LoadError(SlimError):
    """The daemon rejected or failed to ingest the source image."""
    stage = "load"


class EmptyRegistryError(SlimError):
    """Load reported success but the daemon shows no images.

    Kept distinct from LoadError: this points at the transfer layer,
    not at the daemon refusing the archive.
    """
    stage = "resolve"


class EngineExecutionError(SlimError):
    """The minification engine exited non-zero or could not be run."""
    stage = "engine"

    def __init__(self, message: str, exit_code: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output


class ExportError(SlimError):
    """The engine's tagged output could not be saved or re-imported."""
    stage = "export"


class DockerCommandError(Exception):
    """A docker CLI invocation failed."""

    def __init__(self, command: list, exit_code: int, stderr: str = ""):
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"{' '.join(self.command[:3])} exited {exit_code}: {detail}")
