"""
Copies service sources and shared material into a deployment directory.
The source tree is only ever read.
"""
import fnmatch
import shutil
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List

from firebase_devops.features.deployment.domain.models import ServiceDescriptor
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)


class CopyMode(str, Enum):
    ALLOWLIST = 'allowlist'
    FULL = 'full'


SERVICE_FILES = (
    'index.js',
    'package.json',
    'pipeline-config.js',
    'sequential-orchestrator.js',
    'index-pubsub.js',
    'index-async.js',
    'pubsub-handler.js',
    'queue-manager.js',
    'scheduler-handler.js',
)

EXCLUDE_PATTERNS = (
    'node_modules',
    '.git',
    '*.test.js',
    '*.spec.js',
    '.env.local',
    '.env.development',
    'test',
    'tests',
    '__tests__',
)

ROOT_FILES = ('firestore.rules', 'firestore.indexes.json', '.firebaserc')


def exclusion_filter(patterns: Iterable[str] = EXCLUDE_PATTERNS) -> Callable[[str, List[str]], List[str]]:
    """shutil.copytree ignore callable; applied at every depth."""
    patterns = tuple(patterns)

    def _ignore(directory: str, entries: List[str]) -> List[str]:
        return [
            entry for entry in entries
            if any(fnmatch.fnmatch(entry, pattern) for pattern in patterns)
        ]
    return _ignore


class FileCopier:
    def __init__(self, mode: CopyMode = CopyMode.FULL):
        self.mode = CopyMode(mode)

    def copy_service(self, service: ServiceDescriptor, services_target: Path) -> Path:
        """Copy one service into <services_target>/<name> and return the new directory."""
        target = Path(services_target) / service.name
        if self.mode is CopyMode.FULL:
            shutil.copytree(service.source_path, target, ignore=exclusion_filter())
        else:
            target.mkdir(parents=True, exist_ok=True)
            copied = []
            for filename in SERVICE_FILES:
                source_file = service.source_path / filename
                if source_file.is_file():
                    shutil.copy2(source_file, target / filename)
                    copied.append(filename)
            logger.debug("Copied allow-listed files", extra={"service": service.name, "files": copied})
        logger.info(f"📦 Copied {service.name}", extra={"service": service.name, "mode": self.mode.value})
        return target

    def copy_services(self, services: Iterable[ServiceDescriptor], services_target: Path) -> None:
        Path(services_target).mkdir(parents=True, exist_ok=True)
        for service in services:
            self.copy_service(service, services_target)

    def copy_shared(self, project_root: Path, services_dir: Path, deploy_dir: Path) -> List[str]:
        """
        Copy material every service may depend on.

        Returns:
            Relative paths that were copied
        """
        project_root = Path(project_root)
        services_dir = Path(services_dir)
        deploy_dir = Path(deploy_dir)
        copied = []

        for filename in ROOT_FILES:
            source_file = project_root / filename
            if source_file.is_file():
                shutil.copy2(source_file, deploy_dir / filename)
                copied.append(filename)

        for dirname in ('shared', 'libs'):
            source = project_root / dirname
            if source.is_dir():
                shutil.copytree(source, deploy_dir / dirname, ignore=exclusion_filter())
                copied.append(f"{dirname}/")

        services_libs = services_dir / 'libs'
        if services_libs.is_dir():
            shutil.copytree(services_libs, deploy_dir / 'services' / 'libs', ignore=exclusion_filter())
            copied.append('services/libs/')

        services_package = services_dir / 'package.json'
        if services_package.is_file():
            (deploy_dir / 'services').mkdir(parents=True, exist_ok=True)
            shutil.copy2(services_package, deploy_dir / 'services' / 'package.json')
            copied.append('services/package.json')

        logger.debug("Copied shared material", extra={"copied": copied})
        return copied
