import pytest
from pydantic import ValidationError

from firebase_devops.common.errors import UsageError
from firebase_devops.config.env_config import (
    DEFAULT_PUBLIC_API_EXPORTS,
    DEFAULT_PUBSUB_TOPICS,
    ToolkitConfig,
    emulator_environment,
    get_toolkit_config,
    load_env_file,
)


def write_env(tmp_path, text):
    env_file = tmp_path / '.env'
    env_file.write_text(text, encoding='utf-8')
    return env_file


def test_placeholders_and_empty_values_are_skipped(tmp_path):
    env_file = write_env(tmp_path, 'GEMINI_API_KEY=your_gemini_key\nEMPTY=\nFIREBASE_REGION=us-central1\n')

    assert load_env_file(str(env_file)) == {'FIREBASE_REGION': 'us-central1'}


def test_process_environment_wins_over_env_file(tmp_path):
    write_env(tmp_path, 'FIREBASE_PROJECT_ID=from-file\nFIREBASE_REGION=us-central1\n')

    config = get_toolkit_config(environ={'PROJECT_ROOT': str(tmp_path), 'FIREBASE_PROJECT_ID': 'from-env'})

    assert config.project_id == 'from-env'
    assert config.region == 'us-central1'
    assert config.project_root == tmp_path


def test_defaults(tmp_path):
    config = get_toolkit_config(environ={'PROJECT_ROOT': str(tmp_path)})

    assert config.region == 'europe-west1'
    assert config.pubsub_topics == DEFAULT_PUBSUB_TOPICS
    assert len(config.pubsub_topics) == 10
    assert config.public_api_exports == DEFAULT_PUBLIC_API_EXPORTS
    assert config.confirm_policy == 'prompt'
    assert config.services_path == tmp_path / 'services'
    assert config.state_path == tmp_path / '.firebase-devops'
    assert not config.emulator_mode


def test_list_settings_are_parsed(tmp_path):
    config = get_toolkit_config(environ={
        'PROJECT_ROOT': str(tmp_path),
        'PUBSUB_TOPICS': 'a-topic, b-topic',
        'PUBLIC_API_EXPORTS': 'search,health:healthCheck',
        'GOOGLE_CSE_ID': 'cse',
        'FIRESTORE_EMULATOR_HOST': 'localhost:8080',
    })

    assert config.pubsub_topics == ('a-topic', 'b-topic')
    assert config.public_api_exports == (('search', 'search'), ('health', 'healthCheck'))
    assert config.passthrough_env == (('GOOGLE_CSE_ID', 'cse'),)
    assert config.emulator_mode


def test_invalid_confirm_policy_is_rejected(tmp_path):
    with pytest.raises(ValidationError):
        get_toolkit_config(environ={'PROJECT_ROOT': str(tmp_path), 'CONFIRM_POLICY': 'maybe'})


def test_config_is_immutable_and_overrides_return_copies(tmp_path):
    config = ToolkitConfig(project_root=tmp_path)

    with pytest.raises(ValidationError):
        config.region = 'us-east1'

    changed = config.with_overrides(region='us-east1', services_dir=None)
    assert changed.region == 'us-east1'
    assert config.region == 'europe-west1'
    assert config.with_overrides(services_dir=None) is config


def test_require_project(tmp_path):
    with pytest.raises(UsageError):
        ToolkitConfig(project_root=tmp_path).require_project()


def test_emulator_environment(tmp_path):
    env = emulator_environment(ToolkitConfig(project_id='demo', project_root=tmp_path, concurrency=4))

    assert env['FIRESTORE_EMULATOR_HOST'] == 'localhost:8080'
    assert env['PUBSUB_EMULATOR_HOST'] == 'localhost:8085'
    assert env['FUNCTIONS_EMULATOR'] == 'true'
    assert env['FUNCTION_CONCURRENCY'] == '4'
    assert 'FUNCTION_MAX_INSTANCES' not in env
