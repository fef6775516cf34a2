"""
Generates the deployment directory's firebase.json, package.json, .env and
aggregate services/index.js from a DeploymentManifest.

Output is deterministic: the same manifest and sources produce byte-identical files.
"""
import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from firebase_devops.features.deployment.domain.models import DeploymentManifest
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)

FUNCTIONS_SOURCE = 'services'

FIREBASE_FUNCTIONS_VERSION = '^4.9.0'
FIREBASE_ADMIN_VERSION = '^12.0.0'

_FUNCTIONS_IGNORE = ['node_modules', '.git', '*.test.js', '*.spec.js', '.env.local', '.env.development']

# Lines of the source .env containing either marker are dropped
_LOCAL_ONLY_MARKERS = ('EMULATOR', 'localhost')

PRODUCTION_OVERRIDES_HEADER = '# Production overrides (added by prepare-deploy)'

# Keys the Cloud Functions runtime sets itself; firebase deploy rejects a functions .env defining them
RESERVED_ENV_PREFIXES = ('FIREBASE_', 'X_GOOGLE_', 'EXT_')
RESERVED_ENV_KEYS = frozenset([
    'CLOUD_RUNTIME_CONFIG', 'ENTRY_POINT', 'GCP_PROJECT', 'GCLOUD_PROJECT', 'GOOGLE_CLOUD_PROJECT',
    'FUNCTION_TRIGGER_TYPE', 'FUNCTION_NAME', 'FUNCTION_MEMORY_MB', 'FUNCTION_TIMEOUT_SEC',
    'FUNCTION_IDENTITY', 'FUNCTION_REGION', 'FUNCTION_TARGET', 'FUNCTION_SIGNATURE_TYPE',
    'K_SERVICE', 'K_REVISION', 'K_CONFIGURATION', 'PORT',
])


def production_env_overrides(project_id: str) -> Tuple[Tuple[str, str], ...]:
    return (
        ('NODE_ENV', 'production'),
        ('FUNCTIONS_EMULATOR', 'false'),
        ('FIRESTORE_EMULATOR_HOST', ''),
        ('PUBSUB_EMULATOR_HOST', ''),
        ('FIREBASE_PROJECT_ID', project_id),
    )


def dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + '\n'


def _node_major(runtime: str) -> str:
    return runtime[len('nodejs'):] if runtime.startswith('nodejs') else runtime


def _env_key(line: str) -> Optional[str]:
    stripped = line.strip()
    if not stripped or stripped.startswith('#') or '=' not in stripped:
        return None
    key = stripped.split('=', 1)[0].strip()
    if key.startswith('export '):
        key = key[len('export '):].strip()
    return key


def is_reserved_env_key(key: Optional[str]) -> bool:
    return bool(key) and (key in RESERVED_ENV_KEYS or key.startswith(RESERVED_ENV_PREFIXES))


class ManifestSynthesizer:
    def __init__(self, passthrough_env: Tuple[Tuple[str, str], ...] = ()):
        self.passthrough_env = passthrough_env

    def firebase_json(self, manifest: DeploymentManifest, source_file: Optional[Path] = None,
                      include_firestore: bool = False) -> Dict[str, Any]:
        """
        The project's firebase.json with its functions block pointed at the deployment
        layout, or a template when the project has none. Emulator settings are dropped.
        """
        if source_file is not None and Path(source_file).is_file():
            data = json.loads(Path(source_file).read_text(encoding='utf-8'))
            logger.debug("Using project firebase.json", extra={"source": str(source_file)})
        else:
            data = {}
            if include_firestore:
                data['firestore'] = {'rules': 'firestore.rules', 'indexes': 'firestore.indexes.json'}

        data = copy.deepcopy(data)
        data.pop('emulators', None)

        functions = data.get('functions')
        if isinstance(functions, list):
            block = dict(functions[0]) if functions else {}
        elif isinstance(functions, dict):
            block = dict(functions)
        else:
            block = {}

        block['source'] = FUNCTIONS_SOURCE
        block['runtime'] = manifest.runtime
        block['region'] = manifest.region
        block.setdefault('codebase', 'default')
        block.setdefault('ignore', list(_FUNCTIONS_IGNORE))
        if manifest.memory:
            block['memory'] = manifest.memory
        if manifest.timeout:
            block['timeout'] = manifest.timeout
        environment = dict(block.get('environmentVariables') or {})
        environment['NODE_ENV'] = 'production'
        block['environmentVariables'] = environment

        if isinstance(functions, list) and functions:
            data['functions'] = [block] + list(functions[1:])
        else:
            data['functions'] = block
        return data

    def package_json(self, manifest: DeploymentManifest, name: Optional[str] = None) -> Dict[str, Any]:
        return {
            'name': name or manifest.project_id,
            'version': '1.0.0',
            'description': 'Firebase Functions deployment',
            'main': 'index.js',
            'private': True,
            'engines': {'node': _node_major(manifest.runtime)},
            'dependencies': {
                'firebase-admin': FIREBASE_ADMIN_VERSION,
                'firebase-functions': FIREBASE_FUNCTIONS_VERSION,
            },
        }

    def env_file(self, manifest: DeploymentManifest, source_env: Optional[Path] = None) -> str:
        """
        Source .env without emulator/localhost lines, followed by the production overrides
        and any pass-through keys the source does not define.
        """
        override_keys = {key for key, _ in manifest.env_overrides}
        kept: List[str] = []
        if source_env is not None and Path(source_env).is_file():
            for line in Path(source_env).read_text(encoding='utf-8').splitlines():
                if any(marker in line for marker in _LOCAL_ONLY_MARKERS):
                    continue
                if _env_key(line) in override_keys:
                    continue
                kept.append(line)
        else:
            logger.warning("⚠️  No source .env found; writing production overrides only")

        while kept and not kept[-1].strip():
            kept.pop()

        defined = {_env_key(line) for line in kept}
        lines = list(kept)
        if lines:
            lines.append('')
        lines.append(PRODUCTION_OVERRIDES_HEADER)
        lines.extend(f"{key}={value}" for key, value in manifest.env_overrides)
        for key, value in self.passthrough_env:
            if key not in defined and key not in override_keys:
                lines.append(f"{key}={value}")
        return '\n'.join(lines) + '\n'

    def functions_env_file(self, env_contents: str) -> str:
        """The .env copy read by the functions runtime, without keys the runtime reserves."""
        kept, dropped = [], []
        for line in env_contents.splitlines():
            key = _env_key(line)
            if is_reserved_env_key(key):
                dropped.append(key)
                continue
            kept.append(line)
        if dropped:
            logger.info("Reserved keys left out of services/.env", extra={"keys": dropped})
        return '\n'.join(kept) + '\n'

    def index_js(self, manifest: DeploymentManifest) -> str:
        """Aggregate entry point: one require() per service, one re-export per function."""
        lines = ['// Selected Services - Generated by prepare-deploy']
        for service in manifest.services:
            lines.append(f"const {service.alias} = require('./{service.name}');")
        lines.append('')
        lines.append('// Export all functions from selected services')
        for service in manifest.services:
            lines.append(f"// Exports from {service.name}")
            for function_name in service.exported_function_names:
                lines.append(f"exports.{function_name} = {service.alias}.{function_name};")
        return '\n'.join(lines) + '\n'

    def public_index_js(self, service_name: str, exports: Tuple[Tuple[str, str], ...]) -> str:
        """Entry point exposing exactly the public API allow-list."""
        lines = [
            '// Public API Service Only - Generated by prepare-deploy',
            f"const publicApiService = require('./{service_name}');",
            '',
            '// Export only public API functions',
        ]
        for exported_name, source_name in exports:
            lines.append(f"exports.{exported_name} = publicApiService.{source_name};")
        return '\n'.join(lines) + '\n'

    def write(self, manifest: DeploymentManifest, deploy_dir: Path, project_root: Path,
              index_source: str, firebase_source: Optional[Path] = None) -> List[str]:
        """
        Write every generated file into deploy_dir.

        Args:
            manifest: What to deploy
            deploy_dir: Deployment directory root
            project_root: Source project (for .env)
            index_source: Contents of services/index.js
            firebase_source: Project firebase.json to adapt, if any

        Returns:
            Relative paths written
        """
        deploy_dir = Path(deploy_dir)
        services_target = deploy_dir / FUNCTIONS_SOURCE
        services_target.mkdir(parents=True, exist_ok=True)
        written = []

        include_firestore = (deploy_dir / 'firestore.rules').is_file()
        firebase_config = self.firebase_json(manifest, firebase_source, include_firestore)
        (deploy_dir / 'firebase.json').write_text(dump_json(firebase_config), encoding='utf-8')
        written.append('firebase.json')

        (deploy_dir / 'package.json').write_text(dump_json(self.package_json(manifest)), encoding='utf-8')
        written.append('package.json')

        services_package = services_target / 'package.json'
        if not services_package.is_file():
            services_package.write_text(
                dump_json(self.package_json(manifest, name=f"{manifest.project_id}-services")),
                encoding='utf-8',
            )
            written.append('services/package.json')

        env_contents = self.env_file(manifest, Path(project_root) / '.env')
        (deploy_dir / '.env').write_text(env_contents, encoding='utf-8')
        # Functions read .env from their source directory
        (services_target / '.env').write_text(self.functions_env_file(env_contents), encoding='utf-8')
        written.extend(['.env', 'services/.env'])

        (services_target / 'index.js').write_text(index_source, encoding='utf-8')
        written.append('services/index.js')

        logger.info("📝 Generated deployment manifests", extra={"files": written})
        return written
