"""
Shared fixtures: an in-memory ContainerRuntime and a throwaway ledger.
"""

from pathlib import Path

import pytest

import slimgate.ledger as ledger_module
from slimgate.runtime import DaemonSession, EngineRun, LoadReport
from slimgate.schemas import ImageHandle


class FakeRuntime:
    """ContainerRuntime that records calls instead of talking to Docker.

    fail_at names a call ("start", "load", "list", "engine", "save",
    "import", "tag", "create_inspection", "copy_rootfs") that raises exc.
    stop_exc, when set, is raised by stop_daemon after counting the release.
    """

    def __init__(self, work_dir: Path, images=("sha256:1111",), load_refs=("app:1.0",),
                 engine_exit=0, engine_output="ok", fail_at=None, exc=None, stop_exc=None):
        self.work_dir = work_dir
        self.images = list(images)
        self.load_refs = list(load_refs)
        self.engine_exit = engine_exit
        self.engine_output = engine_output
        self.fail_at = fail_at
        self.exc = exc
        self.stop_exc = stop_exc
        self.calls = []
        self.released = 0
        self.engine_args = None
        self.sessions = []
        self.inspections = []
        self.removed = []

    def _hit(self, name):
        self.calls.append(name)
        if self.fail_at == name:
            raise self.exc

    def new_session(self, work_dir=None):
        n = len(self.sessions) + 1
        path = self.work_dir / f"session-{n}"
        path.mkdir(parents=True, exist_ok=True)
        session = DaemonSession(
            session_id=f"fake{n}",
            container_name=f"fake-dockerd-{n}",
            network=f"fake-net-{n}",
            work_dir=path,
        )
        self.sessions.append(session)
        return session

    def start_daemon(self, session):
        session.started = True
        self._hit("start")

    def load_image(self, session, source):
        self._hit("load")
        return LoadReport(refs=list(self.load_refs))

    def list_images(self, session):
        self._hit("list")
        return list(self.images)

    def run_engine(self, session, engine_image, args):
        self._hit("engine")
        self.engine_args = list(args)
        return EngineRun(exit_code=self.engine_exit, output=self.engine_output)

    def save_image(self, session, tag, archive):
        self._hit("save")
        archive.write_bytes(b"tar")

    def import_image(self, archive):
        self._hit("import")
        return ImageHandle(ref="slim-output:latest", image_id="sha256:slim")

    def tag_image(self, image, tag):
        self._hit("tag")
        return ImageHandle(ref=tag, image_id=image.image_id)

    def stop_daemon(self, session):
        self.calls.append("stop")
        self.released += 1
        if self.stop_exc is not None:
            raise self.stop_exc

    def create_inspection(self, name):
        self._hit("create_inspection")
        self.inspections.append(name)
        return name

    def copy_rootfs(self, image, container, dest):
        self._hit("copy_rootfs")

    def remove_container(self, container):
        self.removed.append(container)


@pytest.fixture
def fake_runtime(tmp_path):
    """Factory for FakeRuntime instances rooted in tmp_path."""
    def make(**kwargs):
        return FakeRuntime(tmp_path / "work", **kwargs)
    return make


@pytest.fixture(autouse=True)
def temp_slimgate_dir(tmp_path, monkeypatch):
    """Keep ledger and keys out of the real home directory."""
    test_dir = tmp_path / ".slimgate"
    test_dir.mkdir()
    keys_dir = test_dir / "keys"
    keys_dir.mkdir()

    monkeypatch.setattr(ledger_module, "SLIMGATE_DIR", test_dir)
    monkeypatch.setattr(ledger_module, "KEYS_DIR", keys_dir)
    monkeypatch.setattr(ledger_module, "LEDGER", test_dir / "ledger.jsonl")
    monkeypatch.setattr(ledger_module, "CHAIN_STATE", test_dir / "chain_state.json")
    monkeypatch.delenv("SLIMGATE_CONFIG", raising=False)

    return test_dir
