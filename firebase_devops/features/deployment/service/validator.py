"""
Validation of an assembled deployment directory.

validate() only inspects and returns a ValidationReport. enforce() turns the
report into a go/no-go decision through the confirmation gates, in this order:

    1. node_modules anywhere  -> "Remove node_modules and continue?" (removed on approval)
    2. critical services      -> "Deploy anyway? These may cause timeouts"
    3. structural issues      -> always blocking
"""
import fnmatch
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from firebase_devops.common.errors import ValidationBlocked
from firebase_devops.features.deployment.domain.models import (
    SizeClass,
    ValidationReport,
    classify_service_size,
    format_size,
)
from firebase_devops.services.system.confirmation import Confirmer
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)

REQUIRED_ROOT_FILES = ('firebase.json', 'package.json')
OPTIONAL_ROOT_FILES = ('firestore.rules', 'firestore.indexes.json', '.firebaserc')
REQUIRED_SERVICE_FILES = ('index.js', 'package.json')
DEV_ARTIFACTS = ('.env.local', '.env.development', 'test', '.git')
SUSPICIOUS_PREFIXES = ('test-', 'debug-', 'dev-', 'experimental-')
CLEANUP_FILE_PATTERNS = ('*.test.js', '*.spec.js', '.env.local', '.env.development')

# Directories in services/ that are never treated as services
_NON_SERVICE_DIRS = {'libs', 'node_modules'}


def directory_size(path: Path) -> int:
    """Apparent size in bytes of every regular file below path (symlinks not followed)."""
    total = 0
    for dirpath, _, filenames in os.walk(path):
        for filename in filenames:
            file_path = os.path.join(dirpath, filename)
            try:
                stat = os.lstat(file_path)
            except OSError:
                continue
            if not os.path.islink(file_path):
                total += stat.st_size
    return total


def find_node_modules(root: Path) -> List[Path]:
    found = []
    for dirpath, dirnames, _ in os.walk(root):
        if 'node_modules' in dirnames:
            found.append(Path(dirpath) / 'node_modules')
            dirnames.remove('node_modules')
        dirnames.sort()
    return found


def _service_dirs(services_dir: Path) -> List[Path]:
    return [
        child for child in sorted(services_dir.iterdir())
        if child.is_dir() and not child.name.startswith('.') and child.name not in _NON_SERVICE_DIRS
    ]


def validate(deploy_dir: Path) -> ValidationReport:
    """Inspect deploy_dir and report everything that stands between it and a clean deploy."""
    deploy_dir = Path(deploy_dir)
    report = ValidationReport()
    logger.info("🔍 Validating deployment directory", extra={"deploy_dir": str(deploy_dir)})

    if not deploy_dir.is_dir():
        report.structural_issues.append(f"Deployment directory does not exist: {deploy_dir}")
        return report

    for filename in REQUIRED_ROOT_FILES:
        if not (deploy_dir / filename).is_file():
            report.structural_issues.append(f"Missing required file: {filename}")
    for filename in OPTIONAL_ROOT_FILES:
        if not (deploy_dir / filename).exists():
            report.missing_optional_files.append(filename)
            logger.debug("Optional file missing", extra={"file": filename})

    services_dir = deploy_dir / 'services'
    if not services_dir.is_dir():
        report.structural_issues.append("Missing services directory")
    else:
        for service_dir in _service_dirs(services_dir):
            service = service_dir.name
            if service.startswith('__'):
                report.structural_issues.append(f"Unwanted directory in services: {service}")
                continue
            if service.startswith(SUSPICIOUS_PREFIXES):
                report.suspicious_services.append(service)

            for filename in REQUIRED_SERVICE_FILES:
                if not (service_dir / filename).is_file():
                    report.structural_issues.append(f"{service}: missing {filename}")
            for artifact in DEV_ARTIFACTS:
                if (service_dir / artifact).exists():
                    report.structural_issues.append(f"{service}: development artifact {artifact}")

            size = directory_size(service_dir)
            size_class = classify_service_size(size)
            if size_class is SizeClass.CRITICAL:
                report.critical_services.append((service, size))
            elif size_class is SizeClass.LARGE:
                report.size_warnings.append((service, size))

    report.node_modules_paths = find_node_modules(deploy_dir)
    report.total_size_bytes = directory_size(deploy_dir)
    _log_report(report)
    return report


def _log_report(report: ValidationReport) -> None:
    for issue in report.structural_issues:
        logger.error(f"❌ {issue}")
    for service, size in report.size_warnings:
        logger.warning(f"⚠️  Large service: {service} ({format_size(size)})",
                       extra={"service": service, "size_bytes": size, "size_class": "large"})
    for service, size in report.critical_services:
        logger.error(f"🚨 Critical size: {service} ({format_size(size)})",
                     extra={"service": service, "size_bytes": size, "size_class": "critical"})
    for service in report.suspicious_services:
        logger.warning(f"⚠️  Suspicious service name: {service}")
    for path in report.node_modules_paths:
        logger.error(f"❌ node_modules found: {path}")

    total = format_size(report.total_size_bytes)
    if report.total_size_class is SizeClass.CRITICAL:
        logger.error(f"❌ Deployment size is very large: {total}")
    elif report.total_size_class is SizeClass.LARGE:
        logger.warning(f"⚠️  Deployment size is large: {total}")
    else:
        logger.info(f"📏 Deployment size: {total}")

    if report.passed:
        logger.info("✅ Validation passed")


def enforce(report: ValidationReport, confirmer: Confirmer) -> ValidationReport:
    """
    Apply the confirmation gates to a report.

    Raises:
        ValidationBlocked: when a gate is rejected or structural issues remain
    """
    if report.node_modules_paths:
        decision = confirmer.confirm(
            f"Found {len(report.node_modules_paths)} node_modules director"
            f"{'y' if len(report.node_modules_paths) == 1 else 'ies'}. Remove node_modules and continue?"
        )
        if not decision.proceed:
            raise ValidationBlocked(f"node_modules present in deployment directory ({decision.reason})",
                                    reasons=[str(p) for p in report.node_modules_paths])
        for path in report.node_modules_paths:
            shutil.rmtree(path, ignore_errors=True)
            logger.info(f"🧹 Removed {path}")
        report.node_modules_paths = []

    if report.critical_services:
        listing = ', '.join(f"{name} ({format_size(size)})" for name, size in report.critical_services)
        decision = confirmer.confirm(f"Critical size services: {listing}. Deploy anyway? These may cause timeouts")
        if not decision.proceed:
            raise ValidationBlocked(f"Critical size services: {listing} ({decision.reason})",
                                    reasons=[name for name, _ in report.critical_services])

    if report.structural_issues:
        raise ValidationBlocked(
            f"Deployment directory has {len(report.structural_issues)} structural issue(s)",
            reasons=list(report.structural_issues),
        )
    return report


def clean_deployment_directory(deploy_dir: Path) -> List[str]:
    """Remove build leftovers (services/node_modules, __* directories, test and local env files)."""
    deploy_dir = Path(deploy_dir)
    removed = []
    services_dir = deploy_dir / 'services'

    services_modules = services_dir / 'node_modules'
    if services_modules.is_dir():
        shutil.rmtree(services_modules)
        removed.append('services/node_modules')

    if services_dir.is_dir():
        for child in sorted(services_dir.iterdir()):
            if child.is_dir() and child.name.startswith('__'):
                shutil.rmtree(child)
                removed.append(f"services/{child.name}")

    for dirpath, dirnames, filenames in os.walk(deploy_dir):
        if 'node_modules' in dirnames:
            dirnames.remove('node_modules')
        for filename in filenames:
            if any(fnmatch.fnmatch(filename, pattern) for pattern in CLEANUP_FILE_PATTERNS):
                file_path = Path(dirpath) / filename
                file_path.unlink()
                removed.append(str(file_path.relative_to(deploy_dir)))

    if removed:
        logger.info(f"🧹 Cleaned {len(removed)} item(s) from deployment directory", extra={"removed": removed})
    return removed


def analyze(deploy_dir: Path) -> Dict[str, Any]:
    """Counts used in deployment summaries."""
    deploy_dir = Path(deploy_dir)
    services_dir = deploy_dir / 'services'
    services = []
    if services_dir.is_dir():
        services = [d.name for d in _service_dirs(services_dir) if not d.name.startswith('__')]

    file_count = js_files = json_files = 0
    for _, _, filenames in os.walk(deploy_dir):
        for filename in filenames:
            file_count += 1
            if filename.endswith('.js'):
                js_files += 1
            elif filename.endswith('.json'):
                json_files += 1

    return {
        'services': services,
        'service_count': len(services),
        'file_count': file_count,
        'js_files': js_files,
        'json_files': json_files,
        'total_size_bytes': directory_size(deploy_dir),
    }


def checklist(deploy_dir: Path, project_id: str, report: ValidationReport,
              firebase_available: bool) -> Tuple[List[Tuple[str, bool]], int]:
    """
    Pre-deployment checklist.

    Returns:
        ([(label, ok), ...], score)
    """
    deploy_dir = Path(deploy_dir)
    stats = analyze(deploy_dir)
    firebase_json = deploy_dir / 'firebase.json'
    has_dev_files = any(
        any(fnmatch.fnmatch(filename, pattern) for pattern in CLEANUP_FILE_PATTERNS)
        for _, _, filenames in os.walk(deploy_dir)
        for filename in filenames
    )
    items = [
        ("Deployment directory structure valid", not report.structural_issues),
        ("firebase.json present", firebase_json.is_file()),
        ("No development files detected", not has_dev_files),
        (f"Service count reasonable ({stats['service_count']} services)", 1 <= stats['service_count'] <= 20),
        ("No node_modules in deployment", not report.node_modules_paths),
        ("Firebase CLI available", firebase_available),
    ]
    score = sum(1 for _, ok in items if ok)
    for label, ok in items:
        logger.info(f"{'✅' if ok else '❌'} {label}")
    logger.info(f"📊 Checklist score: {score}/{len(items)}", extra={"project_id": project_id})
    return items, score


def summarize(report: ValidationReport, deploy_dir: Optional[Path] = None) -> str:
    """One-line human summary for the CLI."""
    parts = [
        'passed' if report.passed else 'failed',
        f"{len(report.structural_issues)} structural issue(s)",
        f"{len(report.size_warnings)} large",
        f"{len(report.critical_services)} critical",
        f"total {format_size(report.total_size_bytes)}",
    ]
    prefix = f"{deploy_dir}: " if deploy_dir else ''
    return prefix + ', '.join(parts)
