"""
Base Service Class.
Provides common utility methods for all services.
"""
from datetime import datetime
from typing import Optional

from firebase_devops.config.env_config import ToolkitConfig
from firebase_devops.services.system.command_runner import CommandRunner
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)


class BaseService:
    """
    Abstract base class for all services.
    Holds the invocation's configuration and the runner used for vendor CLIs.
    """

    def __init__(self, config: ToolkitConfig, runner: Optional[CommandRunner] = None):
        self.config = config
        self.runner = runner or CommandRunner()

    def now(self) -> datetime:
        """Return current local time."""
        return datetime.now()

    def timestamp(self) -> str:
        """Timestamp used in export and backup names, e.g. 20240131_142501."""
        return self.now().strftime('%Y%m%d_%H%M%S')
