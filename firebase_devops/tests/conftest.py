import os
import tempfile

# Log files go to a throwaway directory; must happen before the logger service is imported
os.environ.setdefault('LOG_DIR', tempfile.mkdtemp(prefix='firebase-devops-test-logs-'))

import json
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional

import pytest

from firebase_devops.config.env_config import ToolkitConfig
from firebase_devops.services.system.command_runner import CommandResult, CommandRunner
from firebase_devops.services.system.confirmation import ConfirmationPolicy, Confirmer


class FakeRunner(CommandRunner):
    """Records commands instead of running them."""

    def __init__(self, available=('firebase', 'npm'), responder: Optional[Callable] = None):
        super().__init__(base_env={})
        self.available = set(available)
        self.responder = responder
        self.calls: List[SimpleNamespace] = []
        self.spawned: List[SimpleNamespace] = []
        self.next_pid = 40000

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.available else None

    def run(self, argv, cwd=None, env=None, capture=True, check=False, timeout=None):
        call = SimpleNamespace(argv=list(argv), cwd=cwd, env=dict(env or {}), capture=capture, check=check)
        self.calls.append(call)
        result = CommandResult(list(argv), 0, '', '')
        if self.responder is not None:
            result = self.responder(call) or result
        if check and not result.ok:
            from firebase_devops.common.errors import VendorCommandError
            raise VendorCommandError(f"{argv[0]} exited with code {result.returncode}", result.returncode, argv)
        return result

    def spawn(self, argv, cwd=None, env=None, log_path=None):
        self.next_pid += 1
        process = SimpleNamespace(pid=self.next_pid, returncode=None, poll=lambda: None)
        self.spawned.append(SimpleNamespace(argv=list(argv), cwd=cwd, env=dict(env or {}),
                                            log_path=log_path, process=process))
        return process

    def commands(self) -> List[List[str]]:
        return [call.argv for call in self.calls]


def approve() -> Confirmer:
    return Confirmer(ConfirmationPolicy.AUTO_APPROVE)


def reject() -> Confirmer:
    return Confirmer(ConfirmationPolicy.AUTO_REJECT)


def answering(*answers: str) -> Confirmer:
    """A prompting confirmer fed with canned answers; records the questions asked."""
    queue = list(answers)
    questions = []

    def _input(question):
        questions.append(question)
        return queue.pop(0) if queue else ''

    confirmer = Confirmer(ConfirmationPolicy.PROMPT, input_func=_input, is_interactive=lambda: True)
    confirmer.questions = questions
    return confirmer


def write_service(services_dir: Path, name: str, functions=('handler',), extra_files: Optional[Dict[str, str]] = None,
                  size_bytes: int = 0) -> Path:
    """Create a service directory with an index.js exporting the given functions."""
    service_dir = services_dir / name
    service_dir.mkdir(parents=True, exist_ok=True)
    source = ''.join(f"exports.{fn} = (req, res) => res.send('{fn}');\n" for fn in functions)
    (service_dir / 'index.js').write_text(source, encoding='utf-8')
    (service_dir / 'package.json').write_text(json.dumps({'name': name, 'main': 'index.js'}), encoding='utf-8')
    for relative, contents in (extra_files or {}).items():
        target = service_dir / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(contents, encoding='utf-8')
    if size_bytes:
        # sparse file: apparent size counts, no disk used
        with open(service_dir / 'payload.bin', 'wb') as handle:
            handle.truncate(size_bytes)
    return service_dir


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def project(tmp_path):
    """A small project tree with a firebase.json, .env and two services."""
    root = tmp_path / 'project'
    services = root / 'services'
    services.mkdir(parents=True)
    (root / 'firebase.json').write_text(json.dumps({
        'functions': {'source': 'services', 'runtime': 'nodejs18'},
        'emulators': {'firestore': {'port': 8080}, 'ui': {'enabled': True, 'port': 4000}},
    }), encoding='utf-8')
    (root / '.env').write_text(
        'FIREBASE_PROJECT_ID=demo-project\n'
        'GEMINI_API_KEY=abc\n'
        'FIRESTORE_EMULATOR_HOST=localhost:8080\n',
        encoding='utf-8',
    )
    write_service(services, 'alpha-service', ('alphaOne', 'alphaTwo'))
    write_service(services, 'beta-service', ('betaOne',))
    return root


@pytest.fixture
def config(tmp_path, project):
    return ToolkitConfig(
        project_id='demo-project',
        project_root=project,
        scratch_root=tmp_path / 'scratch',
        state_dir=tmp_path / 'state',
        poll_interval=0,
        startup_attempts=3,
    )
