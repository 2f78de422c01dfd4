from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from asyncwf import cli
from asyncwf.agents import AgentSpec
from asyncwf.config import get_settings
from asyncwf.jobs import Orchestrator
from asyncwf.storage import LogSink, Task, TaskStatus, TaskStore


@pytest.fixture
def state_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    state = tmp_path / ".asyncwf"
    monkeypatch.setenv("ASYNCWF_STATE_DIR", str(state))
    monkeypatch.setenv("ASYNCWF_CKB_PATH", str(tmp_path / "ckb"))
    monkeypatch.setenv("ASYNCWF_POLL_INTERVAL", "0.05")
    monkeypatch.delenv("ASYNCWF_DEFAULT_AGENT", raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield state
    get_settings.cache_clear()


def _seed(state: Path, job_id: str, status: TaskStatus, *, exit_code=None, pid=None, log=None) -> None:
    store = TaskStore(state / "tasks.json")
    store.create(Task(id=job_id, prompt="p", status=TaskStatus.RUNNING, pid=pid))
    if status != TaskStatus.RUNNING:
        store.update(job_id, status=status, exit_code=exit_code)
    if log is not None:
        LogSink(state / "logs").append(job_id, log)


def test_list_empty_and_filtered(state_dir: Path, capsys) -> None:
    cli.main(["taskmgr", "list"])
    assert json.loads(capsys.readouterr().out) == []

    _seed(state_dir, "a", TaskStatus.DONE, exit_code=0)
    _seed(state_dir, "b", TaskStatus.FAILED, exit_code=2)

    cli.main(["taskmgr", "list", "--status", "failed"])
    listed = json.loads(capsys.readouterr().out)
    assert [(item["id"], item["exitCode"]) for item in listed] == [("b", 2)]


def test_list_rejects_bad_status(state_dir: Path, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["taskmgr", "list", "--status", "paused"])

    assert excinfo.value.code == 1
    assert "Invalid status 'paused'" in capsys.readouterr().out


def test_fetch_prints_status_and_log(state_dir: Path, capsys) -> None:
    _seed(state_dir, "build", TaskStatus.DONE, exit_code=0, log="hi\n")
    _seed(state_dir, "quiet", TaskStatus.DONE, exit_code=0)

    cli.main(["taskmgr", "fetch", "--job", "build"])
    out = capsys.readouterr().out
    assert out.startswith("Status: done\n---\nhi")

    cli.main(["taskmgr", "fetch", "--job", "quiet"])
    assert 'No output file found for job "quiet"' in capsys.readouterr().out

    with pytest.raises(SystemExit):
        cli.main(["taskmgr", "fetch", "--job", "ghost"])
    assert 'Error: Job "ghost" not found' in capsys.readouterr().out


def test_kill_paths(state_dir: Path, capsys) -> None:
    process = subprocess.Popen(["sleep", "30"])
    try:
        _seed(state_dir, "live", TaskStatus.RUNNING, pid=process.pid)
        _seed(state_dir, "finished", TaskStatus.DONE, exit_code=0)

        cli.main(["taskmgr", "kill", "--job", "live"])
        assert 'Job "live" terminated' in capsys.readouterr().out
        process.wait(timeout=5)

        cli.main(["taskmgr", "kill", "--job", "finished"])
        assert 'Could not terminate job "finished"' in capsys.readouterr().out

        with pytest.raises(SystemExit):
            cli.main(["taskmgr", "kill", "--job", "ghost"])
        assert 'Job "ghost" not found' in capsys.readouterr().out
    finally:
        if process.poll() is None:
            process.kill()
            process.wait()

    assert TaskStore(state_dir / "tasks.json").get("live").status == TaskStatus.FAILED


def test_wait_returns_terminal_jobs(state_dir: Path, capsys) -> None:
    _seed(state_dir, "a", TaskStatus.DONE, exit_code=0)

    cli.main(["taskmgr", "wait", "--jobs", "a, ghost", "--timeout", "1000"])

    assert json.loads(capsys.readouterr().out) == [{"id": "a", "status": "done", "exitCode": 0}]


def test_wait_reconcile_fails_orphans(state_dir: Path, capsys) -> None:
    finished = subprocess.Popen(["true"])
    finished.wait()
    _seed(state_dir, "orphan", TaskStatus.RUNNING, pid=finished.pid)

    cli.main(["taskmgr", "wait", "--jobs", "orphan", "--timeout", "2000", "--reconcile"])

    assert json.loads(capsys.readouterr().out) == [{"id": "orphan", "status": "failed", "exitCode": -1}]


def test_wait_rejects_empty_job_list(state_dir: Path, capsys) -> None:
    with pytest.raises(SystemExit):
        cli.main(["taskmgr", "wait", "--jobs", " , "])
    assert "at least one job id" in capsys.readouterr().out


def test_dispatch_reports_structural_errors(state_dir: Path, capsys) -> None:
    with pytest.raises(SystemExit):
        cli.main(["taskmgr", "dispatch", "--job", "x", "--prompt", "p", "--agent", "copilot"])
    assert 'Invalid agent "copilot"' in capsys.readouterr().out

    with pytest.raises(SystemExit):
        cli.main(["taskmgr", "dispatch", "--job", "../x", "--prompt", "p"])
    assert "Error:" in capsys.readouterr().out
    assert not (state_dir / "tasks.json").exists()


def test_dispatch_starts_job(state_dir: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    agents = {"sh": AgentSpec(name="sh", command="sh", prompt_flags=("-c",))}

    def load(settings):
        return Orchestrator(
            TaskStore(settings.tasks_path),
            LogSink(settings.logs_dir),
            default_agent="sh",
            agents=agents,
            poll_interval=0.05,
        )

    monkeypatch.setattr(cli, "load_orchestrator", load)

    cli.main(["taskmgr", "dispatch", "--job", "build", "--prompt", "echo hi"])
    summary = json.loads(capsys.readouterr().out)
    assert summary["id"] == "build"
    assert summary["status"] == "running"

    cli.main(["taskmgr", "wait", "--jobs", "build", "--timeout", "5000"])
    assert json.loads(capsys.readouterr().out)[0]["status"] == "done"


def test_reconcile_command(state_dir: Path, capsys) -> None:
    finished = subprocess.Popen(["true"])
    finished.wait()
    _seed(state_dir, "orphan", TaskStatus.RUNNING, pid=finished.pid)

    cli.main(["taskmgr", "reconcile"])

    reconciled = json.loads(capsys.readouterr().out)
    assert [item["id"] for item in reconciled] == ["orphan"]


def test_no_command_prints_help(capsys) -> None:
    cli.main([])
    assert "usage: asyncwf" in capsys.readouterr().out


def _run_cli(args: list[str], env: dict[str, str], cwd: Path) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "asyncwf.cli", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        env=env,
        timeout=30,
    )


def test_separate_cli_invocations_record_real_exit(tmp_path: Path) -> None:
    repo_root = Path(__file__).resolve().parents[1]
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    agent = bin_dir / "claude"
    agent.write_text("#!/bin/sh\necho hi\nexit 0\n", encoding="utf-8")
    agent.chmod(0o755)

    env = {
        key: value
        for key, value in os.environ.items()
        if not key.startswith("ASYNCWF_")
    }
    env["PATH"] = f"{bin_dir}{os.pathsep}{env.get('PATH', '')}"
    env["PYTHONPATH"] = f"{repo_root / 'src'}{os.pathsep}{env.get('PYTHONPATH', '')}"
    env["ASYNCWF_STATE_DIR"] = str(tmp_path / ".asyncwf")
    env["ASYNCWF_CKB_PATH"] = str(tmp_path / "ckb")

    dispatched = _run_cli(["taskmgr", "dispatch", "--job", "build", "--prompt", "say hi"], env, tmp_path)
    assert dispatched.returncode == 0, dispatched.stderr
    assert json.loads(dispatched.stdout)["id"] == "build"

    waited = _run_cli(["taskmgr", "wait", "--jobs", "build", "--timeout", "2000"], env, tmp_path)
    assert waited.returncode == 0, waited.stderr
    assert json.loads(waited.stdout) == [{"id": "build", "status": "done", "exitCode": 0}]

    fetched = _run_cli(["taskmgr", "fetch", "--job", "build"], env, tmp_path)
    assert fetched.stdout.startswith("Status: done\n---\nhi")
    assert "exited while unobserved" not in fetched.stdout
