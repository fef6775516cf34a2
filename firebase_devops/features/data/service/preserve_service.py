"""
Firestore export/import helper, emulator and production aware.

Emulator mode (FIRESTORE_EMULATOR_HOST set or USE_FIREBASE_EMULATOR=true) uses
`firebase emulators:export` / `emulators:start --import`; production uses
`gcloud firestore export|import` against FIRESTORE_EXPORT_BUCKET.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional

from firebase_devops.common.base.base_service import BaseService
from firebase_devops.common.errors import PreconditionError, UsageError
from firebase_devops.config.env_config import emulator_environment
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)

EXPORT_PREFIX = 'firebase-export-'


def gcs_path(bucket: str, name: str) -> str:
    """Join a bucket (with or without gs://) and an object prefix."""
    if name.startswith('gs://'):
        return name
    bucket = bucket.rstrip('/')
    if not bucket.startswith('gs://'):
        bucket = f"gs://{bucket}"
    return f"{bucket}/{name}"


class PreserveDataService(BaseService):
    def export_name(self) -> str:
        return f"{EXPORT_PREFIX}{self.timestamp()}"

    def _require_bucket(self) -> str:
        if not self.config.export_bucket:
            raise PreconditionError(
                "FIRESTORE_EXPORT_BUCKET not set. To use production Firestore you must provide a GCS bucket.",
                hint="export FIRESTORE_EXPORT_BUCKET=my-bucket",
            )
        return self.config.export_bucket

    def export(self) -> str:
        """Export Firestore data; returns the local path or gs:// URI written."""
        name = self.export_name()
        if self.config.emulator_mode:
            self.runner.require('firebase')
            target = self.config.export_path / name
            target.parent.mkdir(parents=True, exist_ok=True)
            logger.info("Detected emulator mode - using 'firebase emulators:export'")
            self.runner.run(
                ['firebase', 'emulators:export', str(target), '--project', self.config.require_project()],
                cwd=self.config.project_root,
                capture=False,
                check=True,
            )
            location = str(target)
        else:
            bucket = self._require_bucket()
            self.runner.require('gcloud')
            location = gcs_path(bucket, name)
            logger.info(f"Exporting Firestore to GCS: {location}")
            self.runner.run(
                ['gcloud', 'firestore', 'export', location, '--project', self.config.require_project()],
                capture=False,
                check=True,
            )
        logger.info(f"✅ Exported to {location}")
        return location

    def import_data(self, path: str, start: bool = False) -> Dict[str, Any]:
        """
        Import a previous export.

        In emulator mode data can only be loaded by starting the emulator with
        --import; without start=True the command to do so is reported instead.
        """
        if not path:
            raise UsageError("Import path is required")

        if self.config.emulator_mode:
            import_dir = Path(path)
            if not import_dir.is_dir():
                raise PreconditionError(f"Import directory not found: {path}")
            argv = ['firebase', 'emulators:start', '--import', str(import_dir), '--only', 'firestore',
                    '--project', self.config.require_project()]
            if not start:
                logger.warning("To import into the local emulator, run:")
                logger.warning(f"  {' '.join(argv)}")
                logger.warning("Or pass --start to start the emulator with this data")
                return {'imported': False, 'command': argv}
            self.runner.require('firebase')
            logger.info("Starting emulator with import (this will run the emulator)")
            self.runner.run(argv, cwd=self.config.project_root, env=emulator_environment(self.config),
                            capture=False, check=True)
            return {'imported': True, 'command': argv}

        location = gcs_path(self._require_bucket(), path)
        self.runner.require('gcloud')
        logger.info(f"Importing from GCS: {location}")
        self.runner.run(
            ['gcloud', 'firestore', 'import', location, '--project', self.config.require_project()],
            capture=False,
            check=True,
        )
        logger.info("✅ Firestore import completed")
        return {'imported': True, 'source': location}

    def backup(self) -> str:
        logger.info("Backing up Firestore data before restart")
        location = self.export()
        logger.info(f"✅ Backup completed: {location}")
        return location

    def restore(self, path: Optional[str], start: bool = False) -> Dict[str, Any]:
        if not path:
            logger.warning("⚠️  No backup path provided, skipping restore")
            return {'imported': False}
        logger.info("Restoring Firestore data after restart")
        return self.import_data(path, start=start)

    def list_exports(self) -> List[str]:
        export_dir = self.config.export_path
        if not export_dir.is_dir():
            logger.warning("⚠️  No exports directory found", extra={"export_dir": str(export_dir)})
            return []
        exports = sorted(p.name for p in export_dir.iterdir() if p.is_dir() and p.name.startswith(EXPORT_PREFIX))
        logger.info(f"Available Firestore exports in: {export_dir}", extra={"count": len(exports)})
        return exports
