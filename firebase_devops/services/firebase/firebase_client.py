"""Shared Firebase Admin initialization helper."""
from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import firebase_admin
from firebase_admin import credentials, firestore

from firebase_devops.common.errors import PreconditionError
from firebase_devops.config.env_config import ToolkitConfig
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)

_firebase_init_lock = threading.Lock()
APP_NAME = 'firebase-devops'


@contextmanager
def _emulator_env(host: Optional[str]) -> Iterator[None]:
    """The Firestore client reads FIRESTORE_EMULATOR_HOST while it is constructed."""
    if not host:
        yield
        return
    previous = os.environ.get('FIRESTORE_EMULATOR_HOST')
    os.environ['FIRESTORE_EMULATOR_HOST'] = host
    try:
        yield
    finally:
        if previous is None:
            os.environ.pop('FIRESTORE_EMULATOR_HOST', None)
        else:
            os.environ['FIRESTORE_EMULATOR_HOST'] = previous


def _service_account(config_env: Dict[str, str]) -> Optional[credentials.Certificate]:
    project_id = config_env.get("FIREBASE_PROJECT_ID")
    client_email = config_env.get("FIREBASE_CLIENT_EMAIL")
    private_key = config_env.get("FIREBASE_PRIVATE_KEY")
    if not (project_id and client_email and private_key):
        return None
    return credentials.Certificate({
        "type": "service_account",
        "project_id": project_id,
        "private_key_id": config_env.get("FIREBASE_PRIVATE_KEY_ID", ""),
        "private_key": private_key.replace("\\n", "\n"),
        "client_email": client_email,
        "client_id": config_env.get("FIREBASE_CLIENT_ID", ""),
        "auth_uri": "https://accounts.google.com/o/oauth2/auth",
        "token_uri": "https://oauth2.googleapis.com/token",
        "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
        "client_x509_cert_url": f"https://www.googleapis.com/robot/v1/metadata/x509/{client_email}"
    })


def initialize_firestore(config: ToolkitConfig, environ: Optional[Dict[str, str]] = None) -> Any:
    """
    Initialize the Firebase Admin SDK for the configured project and return a Firestore client.

    Credentials come from FIREBASE_CLIENT_EMAIL / FIREBASE_PRIVATE_KEY when set, otherwise
    Application Default Credentials. In emulator mode the client talks to the local emulator.
    """
    project_id = config.require_project()
    environ = dict(os.environ if environ is None else environ)
    emulator_host = None
    if config.emulator_mode:
        emulator_host = config.firestore_emulator_host or f"{config.emulator_host}:{config.firestore_port}"

    with _firebase_init_lock:
        try:
            app = firebase_admin.get_app(APP_NAME)
        except ValueError:
            cred = _service_account(environ)
            if cred is not None:
                logger.info("Initializing Firebase with environment variables")
            else:
                logger.info("Initializing Firebase with application default credentials")
            try:
                app = firebase_admin.initialize_app(cred, {'projectId': project_id}, name=APP_NAME)
            except (ValueError, IOError) as e:
                raise PreconditionError(f"Firebase initialization failed: {e}",
                                        hint="Set GOOGLE_APPLICATION_CREDENTIALS or run: gcloud auth application-default login")

        with _emulator_env(emulator_host):
            client = firestore.client(app)
    if emulator_host:
        logger.info(f"Using Firestore emulator at {emulator_host}")
    return client
