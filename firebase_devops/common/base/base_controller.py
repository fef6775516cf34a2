"""
Base Controller Class.
Provides standardized output and error handling for all command controllers.
"""
import json
import sys
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import ValidationError

from firebase_devops.common.errors import ToolkitError
from firebase_devops.config.env_config import ToolkitConfig
from firebase_devops.services.system.command_runner import CommandRunner
from firebase_devops.services.system.confirmation import Confirmer
from firebase_devops.services.system.logger_service import get_logger, log_error

logger = get_logger(__name__)


@dataclass
class CommandContext:
    """
    Everything a command needs, built once per invocation.

    Attributes:
        config (ToolkitConfig): Resolved configuration
        confirmer (Confirmer): Gate for destructive or risky steps
        runner (CommandRunner): Vendor CLI runner
    """
    config: ToolkitConfig
    confirmer: Confirmer = field(default_factory=Confirmer)
    runner: CommandRunner = field(default_factory=CommandRunner)


class BaseController:
    """
    Abstract base class for all controllers.
    Results go to stdout, logs go to stderr and the log files.
    """

    def handle_response(self, data: Any, exit_code: int = 0) -> int:
        """
        Standardized success output.
        :param data: Plain text is printed as-is, anything else as JSON.
        :param exit_code: Process exit code (default 0).
        """
        if data is not None:
            if isinstance(data, str):
                print(data, file=sys.stdout)
            else:
                print(json.dumps(data, indent=2, default=str), file=sys.stdout)
        return exit_code

    def handle_error(self, message: str, exit_code: int = 1) -> int:
        """
        Standardized error output.
        """
        logger.error(f"❌ {message}", extra={"exit_code": exit_code})
        return exit_code

    def run(self, operation: Callable[[], Any]) -> int:
        """Run a command body and translate its outcome into an exit code."""
        try:
            return self.handle_response(operation())
        except ToolkitError as e:
            hint = getattr(e, 'hint', None)
            if hint:
                logger.info(f"💡 {hint}")
            return self.handle_error(e.message, e.exit_code)
        except ValidationError as e:
            errors = '; '.join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
            return self.handle_error(f"Invalid arguments: {errors}")
        except KeyboardInterrupt:
            return self.handle_error("Interrupted", 130)
        except Exception as e:
            log_error(logger, e, context={"controller": type(self).__name__})
            return self.handle_error(f"Unexpected error: {e}")
