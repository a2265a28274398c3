"""
Container Runtime Boundary

ContainerRuntime is the protocol the orchestrator drives. DockerCliRuntime
implements it against the host `docker` CLI:

  - the ephemeral daemon is a privileged docker:dind container on its own
    network, reachable in-network as tcp://dockerd:2375 and from the host
    through a loopback-published port
  - images move host → daemon as a `docker save | docker load` stream and
    daemon → host as an archive round trip
"""

import platform
import shutil
import subprocess
import tempfile
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from .errors import DockerCommandError
from .output import log_warn
from .schemas import ImageHandle

ENGINE_IMAGE_AMD = "index.docker.io/mintoolkit/mint"
ENGINE_IMAGE_ARM = "index.docker.io/mintoolkit/mint-arm"

DAEMON_ALIAS = "dockerd"
DAEMON_PORT = 2375
DAEMON_ENDPOINT = f"tcp://{DAEMON_ALIAS}:{DAEMON_PORT}"

INSPECTION_IMAGE = "alpine"
BEFORE_MOUNT = "/before"
AFTER_MOUNT = "/after"

_ARCH_ENGINE_IMAGES = {
    "amd64": ENGINE_IMAGE_AMD,
    "x86_64": ENGINE_IMAGE_AMD,
    "arm64": ENGINE_IMAGE_ARM,
    "aarch64": ENGINE_IMAGE_ARM,
}


def default_engine_image(machine: Optional[str] = None) -> str:
    """Engine image for the host architecture, or "" when there is none."""
    arch = (machine if machine is not None else platform.machine()).lower()
    return _ARCH_ENGINE_IMAGES.get(arch, "")


@dataclass
class DaemonSession:
    """One ephemeral daemon, owned by exactly one orchestrator run."""
    session_id: str
    container_name: str
    network: str
    work_dir: Path
    engine_container: str = ""
    owns_work_dir: bool = False
    host_endpoint: Optional[str] = None
    started: bool = False


@dataclass
class EngineRun:
    """Completed engine process."""
    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass
class LoadReport:
    """What the daemon said it loaded."""
    refs: List[str] = field(default_factory=list)
    raw: str = ""


class ContainerRuntime(Protocol):
    def new_session(self, work_dir: Optional[str] = None) -> DaemonSession:
        ...

    def start_daemon(self, session: DaemonSession) -> None:
        ...

    def load_image(self, session: DaemonSession, source: ImageHandle) -> LoadReport:
        ...

    def list_images(self, session: DaemonSession) -> List[str]:
        ...

    def run_engine(self, session: DaemonSession, engine_image: str, args: Sequence[str]) -> EngineRun:
        ...

    def save_image(self, session: DaemonSession, tag: str, archive: Path) -> None:
        ...

    def import_image(self, archive: Path) -> ImageHandle:
        ...

    def tag_image(self, image: ImageHandle, tag: str) -> ImageHandle:
        ...

    def stop_daemon(self, session: DaemonSession) -> None:
        ...

    def create_inspection(self, name: str) -> str:
        ...

    def copy_rootfs(self, image: ImageHandle, container: str, dest: str) -> None:
        ...

    def remove_container(self, container: str) -> None:
        ...


def parse_load_output(output: str) -> List[str]:
    """Pull image references out of `docker load` output."""
    refs = []
    for line in output.splitlines():
        line = line.strip()
        for prefix in ("Loaded image ID:", "Loaded image:"):
            if line.startswith(prefix):
                ref = line[len(prefix):].strip()
                if ref and ref not in refs:
                    refs.append(ref)
                break
    return refs


class DockerCliRuntime:
    """ContainerRuntime backed by the docker CLI.

    Single docker calls block until they finish unless command_timeout is
    set. The engine run and the piped image transfers are never bounded.
    """

    def __init__(
        self,
        docker_bin: str = "docker",
        daemon_image: str = "docker:dind",
        start_timeout: float = 60.0,
        poll_interval: float = 0.5,
        command_timeout: Optional[float] = None,
    ):
        self.docker_bin = docker_bin
        self.daemon_image = daemon_image
        self.start_timeout = start_timeout
        self.poll_interval = poll_interval
        self.command_timeout = command_timeout

    def _cmd(self, args: Sequence[str], host: Optional[str] = None) -> List[str]:
        cmd = [self.docker_bin]
        if host:
            cmd += ["-H", host]
        return cmd + list(args)

    def _docker(
        self,
        args: Sequence[str],
        host: Optional[str] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        cmd = self._cmd(args, host)
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.command_timeout)
        except subprocess.TimeoutExpired as e:
            raise DockerCommandError(cmd, -1, f"timed out after {e.timeout}s") from e
        if check and proc.returncode != 0:
            raise DockerCommandError(cmd, proc.returncode, proc.stderr)
        return proc

    def _pipe(self, src: List[str], dst: List[str]) -> subprocess.CompletedProcess:
        """Run `src | dst`, failing if either side fails."""
        producer = subprocess.Popen(src, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        try:
            consumer = subprocess.run(dst, stdin=producer.stdout, capture_output=True)
        finally:
            producer.stdout.close()
            producer_err = producer.stderr.read().decode(errors="replace")
            producer.stderr.close()
            producer.wait()
        if producer.returncode != 0:
            raise DockerCommandError(src, producer.returncode, producer_err)
        stdout = consumer.stdout.decode(errors="replace")
        stderr = consumer.stderr.decode(errors="replace")
        if consumer.returncode != 0:
            raise DockerCommandError(dst, consumer.returncode, stderr)
        return subprocess.CompletedProcess(dst, consumer.returncode, stdout, stderr)

    # Daemon lifecycle

    def new_session(self, work_dir: Optional[str] = None) -> DaemonSession:
        suffix = uuid.uuid4().hex[:12]
        if work_dir:
            path = Path(work_dir) / suffix
            path.mkdir(parents=True, exist_ok=True)
            owns = False
        else:
            path = Path(tempfile.mkdtemp(prefix="slimgate-"))
            owns = True
        return DaemonSession(
            session_id=suffix,
            container_name=f"slimgate-dockerd-{suffix}",
            network=f"slimgate-net-{suffix}",
            engine_container=f"slimgate-mint-{suffix}",
            work_dir=path,
            owns_work_dir=owns,
        )

    def start_daemon(self, session: DaemonSession) -> None:
        session.started = True
        self._docker(["network", "create", session.network])
        self._docker([
            "run", "-d", "--privileged",
            "--name", session.container_name,
            "--network", session.network,
            "--network-alias", DAEMON_ALIAS,
            "-e", "DOCKER_TLS_CERTDIR=",
            "-p", f"127.0.0.1::{DAEMON_PORT}",
            self.daemon_image,
        ])
        port = self._docker(["port", session.container_name, f"{DAEMON_PORT}/tcp"]).stdout
        lines = port.strip().splitlines()
        if not lines:
            raise DockerCommandError(
                self._cmd(["port", session.container_name]), 0,
                f"daemon {session.container_name} published no port (exited early?)",
            )
        hostport = lines[0].strip()
        session.host_endpoint = f"tcp://{hostport}"
        self._wait_ready(session)

    def _wait_ready(self, session: DaemonSession) -> None:
        deadline = time.monotonic() + self.start_timeout
        while True:
            proc = self._docker(["version", "--format", "{{.Server.Version}}"],
                                host=session.host_endpoint, check=False)
            if proc.returncode == 0:
                return
            if time.monotonic() >= deadline:
                raise TimeoutError(
                    f"daemon {session.container_name} not ready after {self.start_timeout:.0f}s"
                )
            time.sleep(self.poll_interval)

    def stop_daemon(self, session: DaemonSession) -> None:
        """Best-effort teardown; failures are logged, never raised."""
        if session.started:
            steps = [
                ["rm", "-f", "-v", session.container_name],
                ["network", "rm", session.network],
            ]
            if session.engine_container:
                # an interrupted engine run leaves its container on the network
                steps.insert(0, ["rm", "-f", session.engine_container])
            for args in steps:
                try:
                    self._docker(args, check=False)
                except (DockerCommandError, OSError) as e:
                    log_warn(f"Release of {session.session_id}: {e}")
        if session.owns_work_dir:
            shutil.rmtree(session.work_dir, ignore_errors=True)

    # Image movement

    def load_image(self, session: DaemonSession, source: ImageHandle) -> LoadReport:
        proc = self._pipe(
            self._cmd(["save", source.ref]),
            self._cmd(["load"], host=session.host_endpoint),
        )
        return LoadReport(refs=parse_load_output(proc.stdout), raw=proc.stdout)

    def list_images(self, session: DaemonSession) -> List[str]:
        out = self._docker(["images", "-q", "--no-trunc"], host=session.host_endpoint).stdout
        ids: List[str] = []
        for line in out.splitlines():
            line = line.strip()
            if line and line not in ids:
                ids.append(line)
        return ids

    def run_engine(self, session: DaemonSession, engine_image: str, args: Sequence[str]) -> EngineRun:
        run = ["run", "--rm"]
        if session.engine_container:
            run += ["--name", session.engine_container]
        run += ["--network", session.network, "-e", f"DOCKER_HOST={DAEMON_ENDPOINT}", engine_image]
        cmd = self._cmd(run + list(args))
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
        return EngineRun(exit_code=proc.returncode, output=proc.stdout or "")

    def save_image(self, session: DaemonSession, tag: str, archive: Path) -> None:
        self._docker(["save", "-o", str(archive), tag], host=session.host_endpoint)

    def import_image(self, archive: Path) -> ImageHandle:
        out = self._docker(["load", "-i", str(archive)]).stdout
        refs = parse_load_output(out)
        if not refs:
            raise DockerCommandError(self._cmd(["load", "-i", str(archive)]), 0,
                                     f"no image reported in: {out.strip()}")
        ref = refs[0]
        image_id = self._docker(["image", "inspect", "--format", "{{.Id}}", ref]).stdout.strip()
        return ImageHandle(ref=ref, image_id=image_id or None)

    def tag_image(self, image: ImageHandle, tag: str) -> ImageHandle:
        self._docker(["tag", image.image_id or image.ref, tag])
        return ImageHandle(ref=tag, image_id=image.image_id)

    # Inspection container

    def create_inspection(self, name: str) -> str:
        self._docker([
            "create", "-it",
            "--name", name,
            "-v", BEFORE_MOUNT,
            "-v", AFTER_MOUNT,
            INSPECTION_IMAGE, "sh",
        ])
        return name

    def copy_rootfs(self, image: ImageHandle, container: str, dest: str) -> None:
        scratch = self._docker(["create", image.ref, "true"]).stdout.strip()
        try:
            self._pipe(
                self._cmd(["export", scratch]),
                self._cmd(["cp", "-", f"{container}:{dest}"]),
            )
        finally:
            self._docker(["rm", "-f", scratch], check=False)

    def remove_container(self, container: str) -> None:
        self._docker(["rm", "-f", "-v", container], check=False)
