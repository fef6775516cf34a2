"""
Infer a lightweight schema for Firestore collections by sampling documents.

For every field the inferred schema keeps the set of observed types, how often
the field was present and up to three sample values. Nested maps are described
one level deep; subcollections are followed when recursion is enabled.
"""
import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from google.cloud import firestore

from firebase_devops.common.base.base_service import BaseService
from firebase_devops.common.errors import UsageError
from firebase_devops.config.env_config import ToolkitConfig
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)

MAX_SAMPLES = 3
DEFAULT_SAMPLE_SIZE = 10


def detect_type(value: Any) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float)):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, (list, tuple)):
        return 'array'
    if isinstance(value, (datetime, date)):
        return 'timestamp'
    if isinstance(value, firestore.GeoPoint):
        return 'geopoint'
    if isinstance(value, firestore.DocumentReference):
        return 'reference'
    if isinstance(value, bytes):
        return 'bytes'
    if isinstance(value, dict):
        return 'map'
    return type(value).__name__


def json_safe(value: Any) -> Any:
    """Convert Firestore values into something json.dumps accepts."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, firestore.GeoPoint):
        return {'latitude': value.latitude, 'longitude': value.longitude}
    if isinstance(value, firestore.DocumentReference):
        return value.path
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


def _new_field() -> Dict[str, Any]:
    return {'types': [], 'count': 0, 'samples': []}


def merge_field_info(info: Dict[str, Any], value: Any, nested: bool = True) -> None:
    value_type = detect_type(value)
    info['count'] += 1
    if value_type not in info['types']:
        info['types'].append(value_type)
    if len(info['samples']) < MAX_SAMPLES:
        info['samples'].append(json_safe(value))
    if value_type == 'map' and nested:
        fields = info.setdefault('fields', {})
        for key, nested_value in value.items():
            merge_field_info(fields.setdefault(key, _new_field()), nested_value, nested=False)


def schema_from_documents(documents: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Build field info from plain document dicts."""
    fields: Dict[str, Dict[str, Any]] = {}
    for data in documents:
        for key, value in (data or {}).items():
            merge_field_info(fields.setdefault(key, _new_field()), value)
    for info in fields.values():
        info['types'].sort()
    return {'documents_sampled': len(documents), 'fields': dict(sorted(fields.items()))}


class SchemaInferenceService(BaseService):
    def __init__(self, config: ToolkitConfig, client: Any = None):
        super().__init__(config)
        self._client = client

    @property
    def client(self):
        if self._client is None:
            from firebase_devops.services.firebase.firebase_client import initialize_firestore
            self._client = initialize_firestore(self.config)
        return self._client

    def sample_collection(self, collection_ref, sample: int, recurse: bool, depth: int,
                          path: Optional[str] = None) -> Dict[str, Any]:
        snapshots = list(collection_ref.limit(sample).stream())
        schema = schema_from_documents([snap.to_dict() for snap in snapshots])
        schema['path'] = path or collection_ref.id

        if recurse and depth > 0:
            subcollections: Dict[str, Any] = {}
            for snap in snapshots:
                for sub_ref in snap.reference.collections():
                    if sub_ref.id in subcollections:
                        continue
                    subcollections[sub_ref.id] = self.sample_collection(
                        sub_ref, sample, recurse, depth - 1,
                        path=f"{schema['path']}/{{document}}/{sub_ref.id}",
                    )
            if subcollections:
                schema['subcollections'] = subcollections
        return schema

    def infer(self, collections: Optional[List[str]] = None, sample: int = DEFAULT_SAMPLE_SIZE,
              recurse: bool = False, depth: int = 1, out: Optional[Path] = None) -> Dict[str, Any]:
        """
        Sample each collection (all root collections by default) and describe its fields.

        Args:
            collections: Root collection ids to inspect
            sample: Documents read per collection
            recurse: Follow subcollections of sampled documents
            depth: Maximum subcollection depth when recursing
            out: Optional JSON file to write the schema to

        Returns:
            Mapping of collection id to inferred schema
        """
        if sample < 1:
            raise UsageError("--sample must be at least 1")
        if depth < 0:
            raise UsageError("--depth must not be negative")

        if collections:
            refs = [self.client.collection(name) for name in collections]
        else:
            refs = list(self.client.collections())
        logger.info(f"🔎 Inferring schema for {len(refs)} collections", extra={
            "sample": sample, "recurse": recurse, "depth": depth,
        })

        result = {}
        for ref in refs:
            result[ref.id] = self.sample_collection(ref, sample, recurse, depth)
            logger.info(f"✅ {ref.id}: {len(result[ref.id]['fields'])} fields "
                        f"from {result[ref.id]['documents_sampled']} documents")

        if out:
            out = Path(out)
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(json.dumps(result, indent=2) + '\n', encoding='utf-8')
            logger.info(f"Schema written to {out}")
        return result

