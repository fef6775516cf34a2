"""
Discovers service directories under a services root.
"""
from pathlib import Path
from typing import List, Optional

from firebase_devops.common.errors import PreconditionError, UsageError
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)

# libs/ holds shared code required by services, not a service itself
RESERVED_DIRS = {'node_modules', 'libs'}


def is_service_dir(path: Path) -> bool:
    name = path.name
    if not path.is_dir():
        return False
    if name.startswith('.') or name.startswith('__'):
        return False
    return name not in RESERVED_DIRS


def read_services_file(path: Path) -> List[str]:
    """One service name per line; blank lines and # comments are ignored."""
    path = Path(path)
    if not path.is_file():
        raise UsageError(f"Services file not found: {path}")
    names = []
    for line in path.read_text(encoding='utf-8').splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        if line not in names:
            names.append(line)
    logger.info(f"📋 Services file lists {len(names)} services", extra={"services_file": str(path)})
    return names


class ServiceTreeReader:
    def __init__(self, services_dir: Path):
        self.services_dir = Path(services_dir)

    def list_services(self, selection: Optional[List[str]] = None) -> List[Path]:
        """
        Return service directories.

        Without a selection: every service-like child directory, sorted by name.
        With a selection: the selected services in selection order; names that are
        not present on disk are logged and skipped.
        """
        if not self.services_dir.is_dir():
            raise PreconditionError(f"Services directory not found: {self.services_dir}")

        available = {
            child.name: child
            for child in sorted(self.services_dir.iterdir())
            if is_service_dir(child)
        }

        if selection is None:
            logger.debug("Discovered services", extra={"services": list(available)})
            return list(available.values())

        selected = []
        for service_name in selection:
            if service_name in available:
                selected.append(available[service_name])
            else:
                logger.warning(f"⚠️  Service not found, skipping: {service_name}",
                               extra={"services_dir": str(self.services_dir)})
        return selected
