import os
import signal
import subprocess
import sys

import pytest

from firebase_devops.common.errors import PreconditionError, VendorCommandError
from firebase_devops.services.system.command_runner import TIMEOUT_RETURNCODE, CommandRunner


def test_run_captures_output_and_exit_code():
    result = CommandRunner().run([sys.executable, '-c', 'import sys; print("ready"); sys.exit(3)'])

    assert result.returncode == 3
    assert result.stdout.strip() == 'ready'
    assert not result.ok


def test_timeout_becomes_a_failed_result():
    result = CommandRunner().run([sys.executable, '-c', 'import time; time.sleep(5)'], timeout=0.2)

    assert result.returncode == TIMEOUT_RETURNCODE
    assert 'timed out' in result.stderr


def test_timeout_with_check_raises_vendor_error(monkeypatch):
    def slow(argv, **kwargs):
        raise subprocess.TimeoutExpired(argv, kwargs['timeout'], output=b'partial')

    monkeypatch.setattr(subprocess, 'run', slow)

    with pytest.raises(VendorCommandError) as excinfo:
        CommandRunner().run(['firebase', 'deploy'], timeout=1, check=True)

    assert excinfo.value.exit_code == TIMEOUT_RETURNCODE


def test_missing_executable_is_a_precondition_failure():
    with pytest.raises(PreconditionError):
        CommandRunner().run(['definitely-not-a-real-tool-xyz'])


@pytest.mark.skipif(os.name == 'nt', reason="POSIX signals")
def test_detach_releases_spawned_child(tmp_path):
    runner = CommandRunner()
    process = runner.spawn([sys.executable, '-c', 'import time; time.sleep(5)'], log_path=tmp_path / 'child.log')
    try:
        runner.detach(process)
        assert process.returncode == 0
    finally:
        os.kill(process.pid, signal.SIGKILL)
        os.waitpid(process.pid, 0)
