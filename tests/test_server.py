from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from asyncwf.config import AsyncWFSettings
from asyncwf.jobs import Orchestrator
from asyncwf.server import create_server
from asyncwf.storage import LogSink, Task, TaskStatus, TaskStore


class StubFastMCP:
    def __init__(self, *args, **kwargs) -> None:
        self.kwargs = kwargs
        self.resources: dict[str, object] = {}

    def resource(self, uri, **kwargs):
        def decorator(fn):
            self.resources[uri] = fn
            return fn

        return decorator

    def tool(self, *args, **kwargs):
        def decorator(fn):
            return fn

        return decorator


@pytest.fixture
def settings(tmp_path: Path) -> AsyncWFSettings:
    return AsyncWFSettings(ASYNCWF_STATE_DIR=tmp_path / ".asyncwf", ASYNCWF_CKB_PATH=tmp_path / "ckb")


def test_create_server_reconciles_orphans(monkeypatch, settings: AsyncWFSettings) -> None:
    monkeypatch.setattr("asyncwf.server.FastMCP", StubFastMCP)
    store = TaskStore(settings.tasks_path)
    finished = subprocess.Popen(["true"])
    finished.wait()
    store.create(Task(id="orphan", prompt="p", status=TaskStatus.RUNNING, pid=finished.pid))
    store.create(Task(id="done", prompt="p", status=TaskStatus.RUNNING, pid=finished.pid))
    store.update("done", status=TaskStatus.DONE, exit_code=0)

    server = create_server(settings)

    actions = getattr(server, "reconcile_actions")
    assert [action["job_id"] for action in actions] == ["orphan"]
    assert actions[0]["status"] == "failed"
    assert store.get("orphan").exit_code == -1

    payload = json.loads(server.resources["resource://asyncwf/status"]())
    assert payload["tasks"]["count"] == 2
    assert payload["tasks"]["status_counts"] == {"failed": 1, "done": 1}
    assert payload["reconcile"]["count"] == 1
    assert payload["default_agent"] == "claude"
    assert payload["agents"] == ["claude", "codex", "gemini"]


def test_create_server_reports_corrupt_store(monkeypatch, settings: AsyncWFSettings, caplog) -> None:
    monkeypatch.setattr("asyncwf.server.FastMCP", StubFastMCP)
    caplog.set_level("ERROR", logger="asyncwf.server")
    settings.state_dir.mkdir(parents=True)
    settings.tasks_path.write_text("{broken", encoding="utf-8")

    server = create_server(settings)

    payload = getattr(server, "status_payload")()
    assert payload["reconcile"]["error"]
    assert payload["tasks"]["error"]
    assert payload["tasks"]["count"] == 0
    assert "Startup reconciliation failed" in caplog.text


def test_create_server_uses_given_orchestrator(monkeypatch, settings: AsyncWFSettings) -> None:
    monkeypatch.setattr("asyncwf.server.FastMCP", StubFastMCP)
    orchestrator = Orchestrator(
        TaskStore(settings.tasks_path),
        LogSink(settings.logs_dir),
        default_agent="codex",
    )

    server = create_server(settings, orchestrator=orchestrator)

    assert getattr(server, "orchestrator") is orchestrator
    assert getattr(server, "status_payload")()["default_agent"] == "codex"
    assert server.kwargs["name"] == "AsyncWF"
