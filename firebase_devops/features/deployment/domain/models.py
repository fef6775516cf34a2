from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

MB = 1024 * 1024

# Per-service size classes
LARGE_SERVICE_BYTES = 10 * MB
CRITICAL_SERVICE_BYTES = 50 * MB

# Whole deployment directory
TOTAL_WARNING_BYTES = 100 * MB
TOTAL_ERROR_BYTES = 200 * MB


class SizeClass(str, Enum):
    OK = 'ok'
    LARGE = 'large'
    CRITICAL = 'critical'


def classify_service_size(size_bytes: int) -> SizeClass:
    """OK below 10MB, LARGE from 10MB up to (not including) 50MB, CRITICAL from 50MB."""
    if size_bytes >= CRITICAL_SERVICE_BYTES:
        return SizeClass.CRITICAL
    if size_bytes >= LARGE_SERVICE_BYTES:
        return SizeClass.LARGE
    return SizeClass.OK


def classify_total_size(size_bytes: int) -> SizeClass:
    if size_bytes >= TOTAL_ERROR_BYTES:
        return SizeClass.CRITICAL
    if size_bytes >= TOTAL_WARNING_BYTES:
        return SizeClass.LARGE
    return SizeClass.OK


def format_size(size_bytes: int) -> str:
    if size_bytes >= MB:
        return f"{size_bytes / MB:.1f}MB"
    return f"{size_bytes / 1024:.0f}KB"


@dataclass(frozen=True)
class ServiceDescriptor:
    """
    A Functions module found in the services tree.

    Attributes:
        name (str): Directory name, also the require() path in the aggregate index.js
        source_path (Path): Service directory in the source tree
        exported_function_names (Tuple[str, ...]): Unique function names in discovery order
    """
    name: str
    source_path: Path
    exported_function_names: Tuple[str, ...] = ()

    def __post_init__(self):
        # set semantics, stable order
        object.__setattr__(self, 'exported_function_names',
                           tuple(dict.fromkeys(self.exported_function_names)))

    @property
    def alias(self) -> str:
        """JS identifier used for the require() binding."""
        return self.name.replace('-', '_').replace('.', '_') + 'Service'


@dataclass(frozen=True)
class DeploymentManifest:
    """
    Everything the manifest synthesizer needs to write one deployment directory.

    Attributes:
        project_id (str): Target Firebase project
        region (str): Functions region
        services (Tuple[ServiceDescriptor, ...]): Selected services in output order
        env_overrides (Tuple[Tuple[str, str], ...]): Production lines appended to .env
        runtime (str): Functions runtime, e.g. nodejs18
        public_api_only (bool): Export only the public API allow-list
        memory (Optional[str]): Functions memory setting, e.g. 512MB
        timeout (Optional[str]): Functions timeout, e.g. 300s
    """
    project_id: str
    region: str
    services: Tuple[ServiceDescriptor, ...]
    env_overrides: Tuple[Tuple[str, str], ...] = ()
    runtime: str = 'nodejs18'
    public_api_only: bool = False
    memory: Optional[str] = None
    timeout: Optional[str] = None

    @property
    def service_names(self) -> List[str]:
        return [service.name for service in self.services]


@dataclass
class ValidationReport:
    """
    Findings for an assembled deployment directory.

    Attributes:
        structural_issues (List[str]): Missing files, stray directories, dev artifacts
        size_warnings (List[Tuple[str, int]]): LARGE services (name, bytes)
        critical_services (List[Tuple[str, int]]): CRITICAL services (name, bytes)
        node_modules_paths (List[Path]): Every node_modules directory under the root
        suspicious_services (List[str]): Names that look like test/debug/dev services
        missing_optional_files (List[str]): Optional root files that are absent
        total_size_bytes (int): Apparent size of the whole directory
    """
    structural_issues: List[str] = field(default_factory=list)
    size_warnings: List[Tuple[str, int]] = field(default_factory=list)
    critical_services: List[Tuple[str, int]] = field(default_factory=list)
    node_modules_paths: List[Path] = field(default_factory=list)
    suspicious_services: List[str] = field(default_factory=list)
    missing_optional_files: List[str] = field(default_factory=list)
    total_size_bytes: int = 0

    @property
    def total_size_class(self) -> SizeClass:
        return classify_total_size(self.total_size_bytes)

    @property
    def passed(self) -> bool:
        return not (self.structural_issues or self.critical_services or self.node_modules_paths)

    def to_dict(self) -> Dict:
        return {
            'passed': self.passed,
            'structural_issues': list(self.structural_issues),
            'size_warnings': [[name, size] for name, size in self.size_warnings],
            'critical_services': [[name, size] for name, size in self.critical_services],
            'node_modules': [str(path) for path in self.node_modules_paths],
            'suspicious_services': list(self.suspicious_services),
            'missing_optional_files': list(self.missing_optional_files),
            'total_size_bytes': self.total_size_bytes,
            'total_size_class': self.total_size_class.value,
        }


class DeploymentState(str, Enum):
    PREPARING = 'PREPARING'
    VALIDATING = 'VALIDATING'
    VALIDATED = 'VALIDATED'
    ABORTED = 'ABORTED'
    DEPLOYING = 'DEPLOYING'
    DEPLOYED = 'DEPLOYED'
    FAILED = 'FAILED'


_TRANSITIONS = {
    DeploymentState.PREPARING: {DeploymentState.VALIDATING, DeploymentState.ABORTED},
    DeploymentState.VALIDATING: {DeploymentState.VALIDATED, DeploymentState.ABORTED},
    DeploymentState.VALIDATED: {DeploymentState.DEPLOYING},
    DeploymentState.DEPLOYING: {DeploymentState.DEPLOYED, DeploymentState.FAILED},
    DeploymentState.ABORTED: set(),
    DeploymentState.DEPLOYED: set(),
    DeploymentState.FAILED: set(),
}


class DeploymentRun:
    """In-memory lifecycle of one deployment; never persisted, always starts at PREPARING."""

    def __init__(self, project_id: str):
        self.project_id = project_id
        self.state = DeploymentState.PREPARING
        self.history: List[DeploymentState] = [self.state]

    def advance(self, new_state: DeploymentState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Illegal deployment transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    @property
    def finished(self) -> bool:
        return not _TRANSITIONS[self.state]
