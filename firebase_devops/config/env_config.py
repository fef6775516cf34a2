"""
Environment configuration loader for the Firebase DevOps Toolkit.
Reads the project's .env file plus the process environment into one immutable
ToolkitConfig that every command receives explicitly.
"""

import os
import tempfile
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from firebase_devops.common.errors import UsageError
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)

DEFAULT_REGION = 'europe-west1'
DEFAULT_RUNTIME = 'nodejs18'

DEFAULT_PUBSUB_TOPICS = (
    'category-extraction-topic',
    'product-extraction-topic',
    'product-enrichment-topic',
    'embedding-generation-topic',
    'sustainability-enrichment-topic',
    'eprel-enrichment-topic',
    'oecd-enrichment-topic',
    'image-enrichment-topic',
    'orchestrator-feedback-topic',
    'orchestrator-requests-topic',
)

# exported name -> attribute on the public API module
DEFAULT_PUBLIC_API_EXPORTS = (
    ('queryProductScores', 'queryProductScores'),
    ('queryBrandScores', 'queryBrandScores'),
    ('searchScores', 'searchScores'),
    ('publicApiHealth', 'health'),
)

DEFAULT_MIN_FUNCTIONS_FILTER = 'category_extraction,product_extraction_pubsub,product_enrichment_pubsub'

# Keys copied into the production .env when the source .env does not define them
PASSTHROUGH_KEYS = (
    'GEMINI_API_KEY',
    'GOOGLE_API_KEY',
    'GOOGLE_SEARCH_API_KEY',
    'GOOGLE_CSE_ID',
    'QDRANT_URL',
    'QDRANT_API_KEY',
)


def load_env_file(env_path: Optional[str] = None) -> Dict[str, str]:
    """
    Load variables from a .env file without touching os.environ.

    Args:
        env_path: Path to .env file (default: .env in the current directory)

    Returns:
        Dictionary of non-empty, non-placeholder variables
    """
    if env_path is None:
        env_path = os.path.join(os.getcwd(), '.env')

    if not os.path.exists(env_path):
        logger.debug("No .env file found", extra={"path": str(env_path)})
        return {}

    env_vars = {}
    for key, value in dotenv_values(env_path).items():
        if value and not value.startswith('your_'):
            env_vars[key] = value
        else:
            logger.debug("Placeholder value found - skipping", extra={"key": key})
    logger.debug("Loaded .env file", extra={"path": str(env_path), "keys": len(env_vars)})
    return env_vars


def _split_csv(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(',') if item.strip())


def _parse_public_exports(value: Optional[str]) -> Tuple[Tuple[str, str], ...]:
    """Parse "name,alias:source" pairs; a bare name exports the attribute of the same name."""
    if not value:
        return DEFAULT_PUBLIC_API_EXPORTS
    pairs = []
    for item in _split_csv(value):
        exported, _, source = item.partition(':')
        pairs.append((exported.strip(), (source or exported).strip()))
    return tuple(pairs)


def _int_or_none(value: Optional[str]) -> Optional[int]:
    if value in (None, ''):
        return None
    return int(value)


class ToolkitConfig(BaseModel):
    """Immutable settings shared by every pipeline stage of one invocation."""

    model_config = ConfigDict(frozen=True)

    project_id: str = ''
    region: str = DEFAULT_REGION
    runtime: str = DEFAULT_RUNTIME
    project_root: Path = Field(default_factory=Path.cwd)
    services_dir: Optional[Path] = None

    # Local emulator
    functions_filter: Optional[str] = None
    min_functions_filter: str = DEFAULT_MIN_FUNCTIONS_FILTER
    concurrency: Optional[int] = Field(default=None, ge=1)
    max_instances: Optional[int] = Field(default=None, ge=1)
    emulator_host: str = 'localhost'
    firestore_port: int = 8080
    ui_port: int = 4000
    hub_port: int = 4400
    functions_port: int = 5001
    pubsub_port: int = 8085
    logging_port: int = 4500
    eventarc_port: int = 9150
    startup_attempts: int = Field(default=30, ge=1)
    poll_interval: float = Field(default=2.0, ge=0)
    state_dir: Optional[Path] = None

    # Deployment
    scratch_root: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    confirm_policy: str = 'prompt'
    public_api_service: str = 'public-api-service'
    public_api_exports: Tuple[Tuple[str, str], ...] = DEFAULT_PUBLIC_API_EXPORTS
    passthrough_env: Tuple[Tuple[str, str], ...] = ()
    function_name_transform: str = 'default'
    function_name_prefix: str = ''
    function_name_suffix: str = ''
    custom_function_name: Optional[str] = None

    # Pub/Sub
    pubsub_topics: Tuple[str, ...] = DEFAULT_PUBSUB_TOPICS

    # Data
    export_dir: Optional[Path] = None
    export_bucket: Optional[str] = None
    firestore_emulator_host: Optional[str] = None
    use_firebase_emulator: bool = False

    # Resource limits
    max_memory_mb: int = 1024
    max_cpu_percent: float = 80.0
    max_node_processes: int = 20

    @field_validator('confirm_policy')
    def known_policy(cls, v):
        v = (v or 'prompt').lower()
        if v not in ('prompt', 'yes', 'no'):
            raise ValueError(f"CONFIRM_POLICY must be prompt, yes or no (got {v!r})")
        return v

    @field_validator('function_name_transform')
    def known_transform(cls, v):
        if v not in ('default', 'snake', 'kebab', 'camel', 'custom'):
            raise ValueError(f"Unknown FUNCTION_NAME_TRANSFORM: {v!r}")
        return v

    @property
    def services_path(self) -> Path:
        return self.services_dir or self.project_root / 'services'

    @property
    def state_path(self) -> Path:
        return self.state_dir or self.project_root / '.firebase-devops'

    @property
    def export_path(self) -> Path:
        return self.export_dir or self.project_root / 'emulator-data'

    @property
    def share_path(self) -> Path:
        return self.project_root / '.emulator-sharing'

    @property
    def emulator_mode(self) -> bool:
        return bool(self.firestore_emulator_host) or self.use_firebase_emulator

    @property
    def emulator_ports(self) -> Dict[str, int]:
        return {
            'firestore': self.firestore_port,
            'ui': self.ui_port,
            'hub': self.hub_port,
            'functions': self.functions_port,
            'pubsub': self.pubsub_port,
            'logging': self.logging_port,
            'eventarc': self.eventarc_port,
        }

    def require_project(self) -> str:
        """Return the project id or fail the way a missing --project flag does."""
        if not self.project_id:
            raise UsageError("Project ID is required (set FIREBASE_PROJECT_ID or pass --project)")
        return self.project_id

    def with_overrides(self, **overrides) -> 'ToolkitConfig':
        """Return a copy with the non-None overrides applied (CLI flags win over env)."""
        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        return self.model_validate({**self.model_dump(), **updates})


def get_toolkit_config(env_file: Optional[str] = None,
                       environ: Optional[Mapping[str, str]] = None) -> ToolkitConfig:
    """
    Build the ToolkitConfig for this invocation.

    The process environment wins over values from the .env file.

    Args:
        env_file: Path to .env (default: <PROJECT_ROOT or cwd>/.env)
        environ: Environment mapping (default: os.environ)

    Returns:
        ToolkitConfig
    """
    environ = dict(os.environ if environ is None else environ)
    project_root = Path(environ.get('PROJECT_ROOT') or os.getcwd())
    if env_file is None:
        env_file = str(project_root / '.env')

    values = {**load_env_file(env_file), **{k: v for k, v in environ.items() if v != ''}}
    get = values.get

    passthrough = tuple((key, values[key]) for key in PASSTHROUGH_KEYS if values.get(key))

    settings = {
        'project_id': get('FIREBASE_PROJECT_ID', ''),
        'region': get('FIREBASE_REGION', DEFAULT_REGION),
        'runtime': get('FUNCTIONS_RUNTIME', DEFAULT_RUNTIME),
        'project_root': project_root,
        'services_dir': Path(get('SERVICES_DIR')) if get('SERVICES_DIR') else None,
        'functions_filter': get('FUNCTIONS_FILTER'),
        'min_functions_filter': get('MIN_FUNCTIONS_FILTER', DEFAULT_MIN_FUNCTIONS_FILTER),
        'concurrency': _int_or_none(get('FUNCTION_CONCURRENCY')),
        'max_instances': _int_or_none(get('FUNCTION_MAX_INSTANCES')),
        'emulator_host': get('FIREBASE_EMULATOR_HOST', 'localhost'),
        'firestore_port': int(get('FIREBASE_EMULATOR_PORT', 8080)),
        'ui_port': int(get('FIREBASE_UI_PORT', 4000)),
        'hub_port': int(get('FIREBASE_HUB_PORT', 4400)),
        'functions_port': int(get('FIREBASE_FUNCTIONS_PORT', 5001)),
        'pubsub_port': int(get('PUBSUB_EMULATOR_PORT', 8085)),
        'startup_attempts': int(get('EMULATOR_STARTUP_ATTEMPTS', 30)),
        'poll_interval': float(get('EMULATOR_POLL_INTERVAL', 2)),
        'state_dir': Path(get('TOOLKIT_STATE_DIR')) if get('TOOLKIT_STATE_DIR') else None,
        'scratch_root': Path(get('DEPLOYMENT_SCRATCH_ROOT') or tempfile.gettempdir()),
        'confirm_policy': get('CONFIRM_POLICY', 'prompt'),
        'public_api_service': get('PUBLIC_API_SERVICE', 'public-api-service'),
        'public_api_exports': _parse_public_exports(get('PUBLIC_API_EXPORTS')),
        'passthrough_env': passthrough,
        'function_name_transform': get('FUNCTION_NAME_TRANSFORM', 'default'),
        'function_name_prefix': get('FUNCTION_NAME_PREFIX', ''),
        'function_name_suffix': get('FUNCTION_NAME_SUFFIX', ''),
        'custom_function_name': get('CUSTOM_FUNCTION_NAME'),
        'pubsub_topics': _split_csv(get('PUBSUB_TOPICS')) or DEFAULT_PUBSUB_TOPICS,
        'export_dir': Path(get('EXPORT_DIR')) if get('EXPORT_DIR') else None,
        'export_bucket': get('FIRESTORE_EXPORT_BUCKET'),
        'firestore_emulator_host': get('FIRESTORE_EMULATOR_HOST'),
        'use_firebase_emulator': str(get('USE_FIREBASE_EMULATOR', 'false')).lower() == 'true',
        'max_memory_mb': int(get('MAX_MEMORY_MB', 1024)),
        'max_cpu_percent': float(get('MAX_CPU_PERCENT', 80)),
        'max_node_processes': int(get('MAX_NODE_PROCESSES', 20)),
    }
    config = ToolkitConfig(**settings)
    logger.debug("Toolkit configuration loaded", extra={
        "project_id": config.project_id,
        "region": config.region,
        "project_root": str(config.project_root),
    })
    return config


def emulator_environment(config: ToolkitConfig) -> Dict[str, str]:
    """Environment variables a child process needs to talk to the local emulators."""
    env = {
        'FIRESTORE_EMULATOR_HOST': f"{config.emulator_host}:{config.firestore_port}",
        'PUBSUB_EMULATOR_HOST': f"{config.emulator_host}:{config.pubsub_port}",
        'FUNCTIONS_EMULATOR': 'true',
        'FIREBASE_PROJECT_ID': config.project_id,
        'GCLOUD_PROJECT': config.project_id,
    }
    if config.concurrency is not None:
        env['FUNCTION_CONCURRENCY'] = str(config.concurrency)
    if config.max_instances is not None:
        env['FUNCTION_MAX_INSTANCES'] = str(config.max_instances)
    return env


def production_environment() -> Dict[str, str]:
    """Overrides that keep a vendor CLI from picking up emulator settings."""
    return {
        'FUNCTIONS_EMULATOR': 'false',
        'FIRESTORE_EMULATOR_HOST': '',
        'PUBSUB_EMULATOR_HOST': '',
        'FIREBASE_AUTH_EMULATOR_HOST': '',
    }
