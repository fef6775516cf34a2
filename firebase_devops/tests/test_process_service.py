import os
import signal
import subprocess
import sys

from firebase_devops.services.system import process_service
from firebase_devops.services.system.process_service import PidFile, is_alive, stop_process


def dead_pid():
    proc = subprocess.Popen([sys.executable, '-c', 'pass'])
    proc.wait()
    return proc.pid


def test_is_alive_for_current_and_finished_process():
    assert is_alive(os.getpid())
    assert not is_alive(dead_pid())


def test_pid_file_prunes_stale_entries(tmp_path):
    pid_file = PidFile(tmp_path / 'state' / 'emulator.pid')
    stale = dead_pid()
    pid_file.write([stale, os.getpid()])

    assert pid_file.read() == [os.getpid()]
    assert pid_file.path.read_text() == f"{os.getpid()}\n"


def test_stale_pid_file_is_removed(tmp_path):
    pid_file = PidFile(tmp_path / 'emulator.pid')
    pid_file.write([dead_pid()])

    assert pid_file.running_pid() is None
    assert not pid_file.path.exists()


def test_append_keeps_existing_entries(tmp_path):
    pid_file = PidFile(tmp_path / 'ngrok_pids.txt')
    pid_file.append(11)
    pid_file.append(12)

    assert pid_file.read(prune=False) == [11, 12]


def test_stop_process_escalates_to_sigkill(monkeypatch):
    sent = []
    monkeypatch.setattr(process_service.os, 'kill', lambda pid, sig: sent.append(sig))
    monkeypatch.setattr(process_service, 'is_alive', lambda pid: signal.SIGKILL not in sent)

    assert stop_process(1234, sleep=lambda s: None)
    assert sent == [signal.SIGTERM, signal.SIGKILL]


def test_stop_process_already_gone(monkeypatch):
    def kill(pid, sig):
        raise ProcessLookupError

    monkeypatch.setattr(process_service.os, 'kill', kill)

    assert stop_process(1234, sleep=lambda s: None)
