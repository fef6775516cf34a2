"""
Determines the function names each service exports from its index.js.

Two strategies:
    regex       - scan for `exports.name =` / `module.exports.name =` assignments
    introspect  - require() the module under node and list Object.keys()

`auto` introspects when node is available and falls back to the regex scan.
Anything that would make the aggregate index.js silently miss a function
(no exports found, export forms the scan cannot read, or the same name
exported by two services) raises ExportDetectionError.
"""
import json
import re
from pathlib import Path
from typing import Dict, List, Optional

from firebase_devops.common.errors import ExportDetectionError, UsageError
from firebase_devops.features.deployment.domain.models import ServiceDescriptor
from firebase_devops.services.system.command_runner import CommandRunner
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)

STRATEGIES = ('auto', 'regex', 'introspect')

_EXPORT_ASSIGNMENT = re.compile(
    r'^\s*(?:module\.)?exports\.([A-Za-z_$][\w$]*)\s*=(?!=)',
    re.MULTILINE,
)

# Export forms a line scan cannot enumerate
_OPAQUE_EXPORTS = (
    re.compile(r'^\s*module\.exports\s*=(?!=)', re.MULTILINE),
    re.compile(r'Object\.assign\(\s*(?:module\.)?exports\b'),
    re.compile(r'^\s*(?:module\.)?exports\s*\[', re.MULTILINE),
)

_NODE_LIST_EXPORTS = (
    "const m = require(process.argv[1]);"
    "process.stdout.write(JSON.stringify(Object.keys(m || {})), () => process.exit(0));"
)


def scan_exports(source: str) -> List[str]:
    """Names assigned via exports.X = / module.exports.X =, in order, without duplicates."""
    return list(dict.fromkeys(_EXPORT_ASSIGNMENT.findall(source)))


def has_opaque_exports(source: str) -> bool:
    return any(pattern.search(source) for pattern in _OPAQUE_EXPORTS)


class ExportInspector:
    def __init__(self, runner: Optional[CommandRunner] = None, strategy: str = 'auto',
                 timeout: float = 60):
        if strategy not in STRATEGIES:
            raise UsageError(f"Unknown export detection strategy: {strategy}")
        self.runner = runner or CommandRunner()
        self.strategy = strategy
        self.timeout = timeout

    def describe(self, service_dir: Path) -> ServiceDescriptor:
        """Build the ServiceDescriptor for one service directory."""
        service_dir = Path(service_dir)
        index_js = service_dir / 'index.js'
        if not index_js.is_file():
            raise ExportDetectionError(f"{service_dir.name}: index.js not found", service=service_dir.name)

        source = index_js.read_text(encoding='utf-8', errors='replace')
        scanned = scan_exports(source)
        names: Optional[List[str]] = None

        if self.strategy in ('auto', 'introspect'):
            names = self._introspect(service_dir, index_js)
            if names is None and self.strategy == 'introspect':
                raise ExportDetectionError(
                    f"{service_dir.name}: could not load index.js with node", service=service_dir.name)
            if names is not None:
                missed = [n for n in names if n not in scanned]
                if missed:
                    logger.info("Exports found only by module introspection",
                                extra={"service": service_dir.name, "functions": missed})

        if names is None:
            if has_opaque_exports(source):
                raise ExportDetectionError(
                    f"{service_dir.name}: index.js uses export forms that cannot be scanned "
                    f"(module.exports = ..., Object.assign, computed keys); "
                    f"install node so the module can be introspected",
                    service=service_dir.name,
                )
            names = scanned

        if not names:
            raise ExportDetectionError(f"{service_dir.name}: no exported functions found in index.js",
                                       service=service_dir.name)

        logger.debug("Detected exports", extra={"service": service_dir.name, "functions": names})
        return ServiceDescriptor(service_dir.name, service_dir, tuple(names))

    def _introspect(self, service_dir: Path, index_js: Path) -> Optional[List[str]]:
        if not self.runner.which('node'):
            logger.debug("node not available, using regex export scan")
            return None
        result = self.runner.run(
            ['node', '-e', _NODE_LIST_EXPORTS, str(index_js.resolve())],
            cwd=service_dir,
            timeout=self.timeout,
        )
        if not result.ok:
            logger.warning(f"⚠️  Could not load {service_dir.name}/index.js under node, falling back to regex scan",
                           extra={"service": service_dir.name, "stderr": result.stderr.strip()[-500:]})
            return None
        try:
            keys = json.loads(result.stdout.strip() or '[]')
        except ValueError:
            logger.warning("Unexpected node output while listing exports",
                           extra={"service": service_dir.name, "stdout": result.stdout[-500:]})
            return None
        return [str(key) for key in keys]

    def describe_all(self, service_dirs: List[Path]) -> List[ServiceDescriptor]:
        """Describe every service and reject function names exported by more than one."""
        descriptors = [self.describe(path) for path in service_dirs]
        ensure_unique_exports(descriptors)
        return descriptors


def ensure_unique_exports(descriptors: List[ServiceDescriptor]) -> None:
    owners: Dict[str, str] = {}
    for descriptor in descriptors:
        for function_name in descriptor.exported_function_names:
            if function_name in owners:
                raise ExportDetectionError(
                    f"Function '{function_name}' is exported by both "
                    f"{owners[function_name]} and {descriptor.name}",
                    service=descriptor.name,
                )
            owners[function_name] = descriptor.name
