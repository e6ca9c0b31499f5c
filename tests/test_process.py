"""Tests for process identity checks."""

import os
import subprocess

from conftest import PROJECT, make_shell
from hud.core.process import _lsof_cwd, pid_alive, process_cwd, verify_shell


def test_pid_alive_for_self():
    """Test the current process is alive."""
    assert pid_alive(os.getpid())


def test_pid_alive_for_reaped_child():
    """Test a finished, reaped child is gone."""
    child = subprocess.Popen(["true"])
    child.wait()

    assert not pid_alive(child.pid)


def test_pid_alive_rejects_non_positive():
    """Test pid 0 and negatives are never signalled."""
    assert not pid_alive(0)
    assert not pid_alive(-1)


def test_process_cwd_of_self(tmp_path, monkeypatch):
    """Test the cwd of the current process resolves."""
    monkeypatch.chdir(tmp_path)

    cwd = process_cwd(os.getpid())

    if cwd is not None:
        assert os.path.realpath(cwd) == os.path.realpath(tmp_path)


def test_lsof_cwd_parses_name_field(monkeypatch):
    """Test lsof -Fn output yields the n-prefixed path."""
    monkeypatch.setattr(
        subprocess,
        "run",
        lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 0, "p123\nfcwd\nn/Users/ada/code\n", ""),
    )

    assert _lsof_cwd(123, timeout=1) == "/Users/ada/code"


def test_lsof_cwd_missing_lsof(monkeypatch):
    """Test a missing lsof is an unknown cwd."""

    def fake_run(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(subprocess, "run", fake_run)

    assert _lsof_cwd(123, timeout=1) is None


def test_verify_shell_dead_pid(monkeypatch):
    """Test a dead shell fails verification."""
    monkeypatch.setattr("hud.core.process.pid_alive", lambda pid: False)

    assert not verify_shell(make_shell(), PROJECT)


def test_verify_shell_moved_away(monkeypatch):
    """Test a live shell whose cwd left the project fails verification."""
    monkeypatch.setattr("hud.core.process.pid_alive", lambda pid: True)
    monkeypatch.setattr("hud.core.process.process_cwd", lambda pid, timeout=2.0: "/somewhere/else")

    assert not verify_shell(make_shell(), PROJECT)


def test_verify_shell_inside_project(monkeypatch):
    """Test a live shell in a project subdirectory passes."""
    monkeypatch.setattr("hud.core.process.pid_alive", lambda pid: True)
    monkeypatch.setattr("hud.core.process.process_cwd", lambda pid, timeout=2.0: PROJECT + "/src")

    assert verify_shell(make_shell(), PROJECT)


def test_verify_shell_unreadable_cwd(monkeypatch):
    """Test an unreadable cwd does not fail a live shell."""
    monkeypatch.setattr("hud.core.process.pid_alive", lambda pid: True)
    monkeypatch.setattr("hud.core.process.process_cwd", lambda pid, timeout=2.0: None)

    assert verify_shell(make_shell(), PROJECT)
