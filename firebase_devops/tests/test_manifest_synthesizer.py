import json

from firebase_devops.features.deployment.domain.models import DeploymentManifest, ServiceDescriptor
from firebase_devops.features.deployment.service.manifest_synthesizer import (
    PRODUCTION_OVERRIDES_HEADER,
    ManifestSynthesizer,
    production_env_overrides,
)


def make_manifest(tmp_path, **kwargs):
    services = (
        ServiceDescriptor('alpha-service', tmp_path / 'alpha-service', ('alphaOne', 'alphaTwo')),
        ServiceDescriptor('beta-service', tmp_path / 'beta-service', ('betaOne',)),
    )
    return DeploymentManifest(
        project_id='demo-project',
        region='europe-west1',
        services=services,
        env_overrides=production_env_overrides('demo-project'),
        **kwargs,
    )


def test_index_js_requires_each_service_once_and_reexports_functions(tmp_path):
    index = ManifestSynthesizer().index_js(make_manifest(tmp_path))

    assert index.count('require(') == 2
    assert "const alpha_serviceService = require('./alpha-service');" in index
    assert "exports.alphaTwo = alpha_serviceService.alphaTwo;" in index
    assert "exports.betaOne = beta_serviceService.betaOne;" in index


def test_firebase_json_points_functions_at_services_and_drops_emulators(tmp_path):
    source = tmp_path / 'firebase.json'
    source.write_text(json.dumps({
        'functions': [{'source': 'functions', 'runtime': 'nodejs16', 'codebase': 'main'}],
        'emulators': {'ui': {'port': 4000}},
        'hosting': {'public': 'dist'},
    }), encoding='utf-8')

    data = ManifestSynthesizer().firebase_json(make_manifest(tmp_path, memory='512MB'), source)

    assert 'emulators' not in data
    assert data['hosting'] == {'public': 'dist'}
    block = data['functions'][0]
    assert block['source'] == 'services'
    assert block['runtime'] == 'nodejs18'
    assert block['region'] == 'europe-west1'
    assert block['codebase'] == 'main'
    assert block['memory'] == '512MB'
    assert block['environmentVariables'] == {'NODE_ENV': 'production'}


def test_firebase_json_template_without_project_file(tmp_path):
    data = ManifestSynthesizer().firebase_json(make_manifest(tmp_path), tmp_path / 'missing.json',
                                               include_firestore=True)

    assert data['firestore'] == {'rules': 'firestore.rules', 'indexes': 'firestore.indexes.json'}
    assert data['functions']['source'] == 'services'


def test_env_file_strips_local_settings_and_appends_overrides(tmp_path):
    source_env = tmp_path / '.env'
    source_env.write_text(
        'GEMINI_API_KEY=abc\n'
        'FIRESTORE_EMULATOR_HOST=localhost:8080\n'
        'API_BASE=http://localhost:5001\n'
        'NODE_ENV=development\n',
        encoding='utf-8',
    )
    synthesizer = ManifestSynthesizer(passthrough_env=(('GEMINI_API_KEY', 'ignored'), ('QDRANT_URL', 'https://q')))

    contents = synthesizer.env_file(make_manifest(tmp_path), source_env)
    lines = contents.splitlines()

    assert lines[0] == 'GEMINI_API_KEY=abc'
    assert 'API_BASE=http://localhost:5001' not in lines
    assert 'NODE_ENV=development' not in lines
    assert PRODUCTION_OVERRIDES_HEADER in lines
    assert 'NODE_ENV=production' in lines
    assert 'FUNCTIONS_EMULATOR=false' in lines
    assert 'FIREBASE_PROJECT_ID=demo-project' in lines
    assert 'QDRANT_URL=https://q' in lines
    assert lines.count('GEMINI_API_KEY=abc') == 1


def test_public_index_exports_only_allow_list():
    exports = (('queryProductScores', 'queryProductScores'), ('publicApiHealth', 'health'))

    index = ManifestSynthesizer().public_index_js('public-api-service', exports)

    assert index.count('require(') == 1
    assert 'exports.publicApiHealth = publicApiService.health;' in index
    assert index.count('exports.') == 2


def test_write_is_deterministic(tmp_path):
    manifest = make_manifest(tmp_path)
    synthesizer = ManifestSynthesizer()
    outputs = []
    for name in ('first', 'second'):
        deploy_dir = tmp_path / name
        synthesizer.write(manifest, deploy_dir, tmp_path, synthesizer.index_js(manifest))
        outputs.append({f: (deploy_dir / f).read_bytes() for f in ('firebase.json', 'package.json', '.env')})

    assert outputs[0] == outputs[1]
    assert (tmp_path / 'second' / 'services' / '.env').read_bytes() == (tmp_path / 'first' / 'services' / '.env').read_bytes()


def test_functions_env_leaves_out_reserved_keys(tmp_path):
    (tmp_path / '.env').write_text(
        'GEMINI_API_KEY=abc\n'
        'FIREBASE_API_KEY=web-key\n'
        'X_GOOGLE_NEWFEATURE=1\n'
        'EXT_INSTANCE_ID=resize\n'
        'GCLOUD_PROJECT=demo-project\n'
        'PORT=8080\n',
        encoding='utf-8',
    )
    manifest = make_manifest(tmp_path)
    synthesizer = ManifestSynthesizer()

    synthesizer.write(manifest, tmp_path / 'deploy', tmp_path, synthesizer.index_js(manifest))

    root_lines = (tmp_path / 'deploy' / '.env').read_text(encoding='utf-8').splitlines()
    functions_lines = (tmp_path / 'deploy' / 'services' / '.env').read_text(encoding='utf-8').splitlines()
    assert 'FIREBASE_PROJECT_ID=demo-project' in root_lines
    assert 'FIREBASE_API_KEY=web-key' in root_lines
    assert 'GEMINI_API_KEY=abc' in functions_lines
    assert 'NODE_ENV=production' in functions_lines
    keys = [line.split('=', 1)[0] for line in functions_lines if '=' in line and not line.startswith('#')]
    assert not [key for key in keys if key.startswith(('FIREBASE_', 'X_GOOGLE_', 'EXT_'))]
    assert 'GCLOUD_PROJECT' not in keys
    assert 'PORT' not in keys
