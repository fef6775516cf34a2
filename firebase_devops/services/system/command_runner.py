"""
Thin wrapper around subprocess for the vendor CLIs (firebase, gcloud, npm, node, ngrok).
Every external command in the toolkit goes through CommandRunner so tests can swap it.
"""
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from firebase_devops.common.errors import PreconditionError, VendorCommandError
from firebase_devops.services.system.logger_service import get_logger, log_command

logger = get_logger(__name__)

PathLike = Union[str, Path]

# Exit status reported for a command killed at its timeout, as coreutils timeout does
TIMEOUT_RETURNCODE = 124

INSTALL_HINTS = {
    'firebase': "npm install -g firebase-tools",
    'gcloud': "https://cloud.google.com/sdk/docs/install",
    'npm': "https://nodejs.org/",
    'node': "https://nodejs.org/",
    'ngrok': "https://ngrok.com/download",
}


def _output_text(output) -> str:
    if isinstance(output, bytes):
        return output.decode('utf-8', errors='replace')
    return output or ''


@dataclass
class CommandResult:
    """
    Outcome of one external command.

    Attributes:
        argv (List[str]): Command and arguments as executed
        returncode (int): Process exit status
        stdout (str): Captured standard output ('' when not captured)
        stderr (str): Captured standard error ('' when not captured)
    """
    argv: List[str]
    returncode: int
    stdout: str = ''
    stderr: str = ''

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class CommandRunner:
    """Runs external commands with the toolkit's logging and error conventions."""
    base_env: Dict[str, str] = field(default_factory=lambda: dict(os.environ))

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name, path=self.base_env.get('PATH'))

    def require(self, name: str) -> str:
        """Return the executable path or raise PreconditionError with an install hint."""
        path = self.which(name)
        if not path:
            hint = INSTALL_HINTS.get(name)
            raise PreconditionError(f"{name} is not installed or not on PATH", hint=hint)
        return path

    def _env(self, env: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = dict(self.base_env)
        if env:
            merged.update(env)
        return merged

    def run(self, argv: List[str], cwd: Optional[PathLike] = None,
            env: Optional[Dict[str, str]] = None, capture: bool = True,
            check: bool = False, timeout: Optional[float] = None) -> CommandResult:
        """
        Run a command to completion.

        Args:
            argv: Command and arguments
            cwd: Working directory
            env: Variables layered over the base environment
            capture: Capture stdout/stderr instead of passing them through
            check: Raise VendorCommandError on a non-zero exit
            timeout: Seconds before the command is killed

        Returns:
            CommandResult
        """
        log_command(logger, argv, str(cwd) if cwd else None)
        try:
            completed = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                env=self._env(env),
                capture_output=capture,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            raise PreconditionError(f"{argv[0]} is not installed or not on PATH",
                                    hint=INSTALL_HINTS.get(argv[0]))
        except subprocess.TimeoutExpired as e:
            logger.warning(f"⏱️  {argv[0]} timed out after {timeout}s", extra={"argv": list(argv)})
            result = CommandResult(
                argv=list(argv),
                returncode=TIMEOUT_RETURNCODE,
                stdout=_output_text(e.stdout),
                stderr=_output_text(e.stderr) or f"timed out after {timeout}s",
            )
        else:
            result = CommandResult(
                argv=list(argv),
                returncode=completed.returncode,
                stdout=completed.stdout or '',
                stderr=completed.stderr or '',
            )

        if check and not result.ok:
            detail = (result.stderr or result.stdout).strip().splitlines()
            message = f"{argv[0]} exited with code {result.returncode}"
            if detail:
                message += f": {detail[-1]}"
            raise VendorCommandError(message, result.returncode, argv)
        return result

    def spawn(self, argv: List[str], cwd: Optional[PathLike] = None,
              env: Optional[Dict[str, str]] = None,
              log_path: Optional[PathLike] = None) -> subprocess.Popen:
        """Start a background process in its own session, output redirected to log_path."""
        log_command(logger, argv, str(cwd) if cwd else None, background=True)
        if log_path:
            Path(log_path).parent.mkdir(parents=True, exist_ok=True)
            output = open(log_path, 'a', encoding='utf-8')
        else:
            output = subprocess.DEVNULL
        try:
            return subprocess.Popen(
                argv,
                cwd=str(cwd) if cwd else None,
                env=self._env(env),
                stdout=output,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )
        except FileNotFoundError:
            raise PreconditionError(f"{argv[0]} is not installed or not on PATH",
                                    hint=INSTALL_HINTS.get(argv[0]))
        finally:
            if log_path:
                output.close()

    def detach(self, process: subprocess.Popen) -> None:
        """
        Hand a spawned child over to its PID file.

        The child keeps running after this process exits; marking the handle as
        released stops Popen from warning that it is still running.
        """
        process.returncode = 0
        logger.debug("Detached background process", extra={"pid": process.pid})
