"""
Admin registry of analysis modules, knowledge base document types and
reference sources.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from utils.firebase_config import COLLECTIONS, FieldFilter, get_firestore_client
from utils.validation import ModuleToggleInput, validate_request

logger = logging.getLogger(__name__)

KINDS = {
    'modules': 'analysis_modules',
    'document_types': 'document_types',
    'reference_sources': 'reference_sources',
}

MODULE_CATEGORIES = ('soil', 'leaf', 'environmental', 'economic', 'sustainability')

# Field defaults applied on create, per kind
DEFAULTS = {
    'modules': {
        'description': '',
        'category': 'soil',
        'version': '1.0.0',
        'is_active': True,
        'config': {},
        'performance_metrics': {},
        'malaysian_context': {},
    },
    'document_types': {
        'description': '',
        'category': 'research',
        'file_types': [],
        'processing_rules': {},
        'quality_metrics': {},
        'is_active': True,
    },
    'reference_sources': {
        'description': '',
        'type': 'file',
        'url': None,
        'access_config': {},
        'update_frequency': 'manual',
        'data_format': 'pdf',
        'trust_score': 0.8,
        'malaysian_focus': True,
        'is_active': True,
    },
}

DEFAULT_MODULES = [
    {
        'key': 'soil_analysis',
        'name': 'Soil Analysis',
        'description': 'Soil fertility interpretation against MPOB optimal ranges with nutrient balance ratios',
        'category': 'soil',
        'config': {
            'input_params': ['pH', 'N', 'P', 'K', 'Ca', 'Mg', 'CEC', 'OC'],
            'algorithms': ['nutrient_balance', 'regional_benchmarking', 'yield_forecast'],
        },
        'performance_metrics': {'accuracy': 0.9, 'reliability': 0.92},
        'malaysian_context': {
            'regions': ['Peninsular Malaysia', 'Sabah', 'Sarawak'],
            'soil_types': ['mineral', 'peat', 'coastal'],
            'certifications': ['RSPO', 'MSPO'],
        },
    },
    {
        'key': 'leaf_analysis',
        'name': 'Leaf Analysis',
        'description': 'Frond 17 foliar nutrient diagnosis with deficiency and antagonism detection',
        'category': 'leaf',
        'config': {
            'input_params': ['N', 'P', 'K', 'Mg', 'Ca', 'B', 'Cu', 'Zn'],
            'algorithms': ['nutrient_balance', 'deficiency_detection'],
        },
        'performance_metrics': {'accuracy': 0.88, 'reliability': 0.9},
        'malaysian_context': {
            'regions': ['Peninsular Malaysia', 'Sabah', 'Sarawak'],
            'soil_types': ['mineral', 'peat', 'coastal'],
            'certifications': ['RSPO', 'MSPO'],
        },
    },
]


class ModuleRegistry:
    """CRUD over the admin-configurable analysis building blocks"""

    def __init__(self, db=None):
        self.logger = logging.getLogger(f"{__name__}.ModuleRegistry")
        self.db = db if db is not None else get_firestore_client()

    def _collection(self, kind: str):
        if kind not in KINDS:
            raise ValueError(f"Invalid type: {kind}")
        if self.db is None:
            raise RuntimeError("Firestore is not available")
        return self.db.collection(COLLECTIONS[KINDS[kind]])

    @staticmethod
    def _to_item(doc) -> Dict[str, Any]:
        data = doc.to_dict() or {}
        data['id'] = doc.id
        return data

    def list(self, kind: str = 'all') -> Dict[str, List[Dict[str, Any]]]:
        """Items per kind, newest first"""
        kinds = list(KINDS) if kind == 'all' else [kind]
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        results = {}
        for name in kinds:
            items = [self._to_item(doc) for doc in self._collection(name).stream()]
            items.sort(key=lambda item: item.get('created_at') or epoch, reverse=True)
            results[name] = items
        return results

    def create(self, kind: str, data: Dict[str, Any]) -> Dict[str, Any]:
        collection = self._collection(kind)
        if not data.get('name'):
            raise ValueError("Name is required")
        if kind == 'modules' and data.get('category', 'soil') not in MODULE_CATEGORIES:
            raise ValueError(f"Invalid module category: {data.get('category')}")
        now = datetime.now(timezone.utc)
        record = {**DEFAULTS[kind], **data, 'created_at': now, 'updated_at': now}
        doc_ref = collection.document()
        doc_ref.set(record)
        self.logger.info(f"Created {kind} entry {data['name']}")
        return {**record, 'id': doc_ref.id}

    def update(self, kind: str, item_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        doc_ref = self._collection(kind).document(item_id)
        if not doc_ref.get().exists:
            raise KeyError(f"{kind} entry {item_id} not found")
        changes = {k: v for k, v in updates.items() if k not in ('id', 'created_at')}
        changes['updated_at'] = datetime.now(timezone.utc)
        doc_ref.update(changes)
        return self._to_item(doc_ref.get())

    def delete(self, kind: str, item_id: str) -> None:
        self._collection(kind).document(item_id).delete()
        self.logger.info(f"Deleted {kind} entry {item_id}")

    def toggle_module(self, toggle) -> Dict[str, Any]:
        """Enable or disable an analysis module by its key

        Raises:
            KeyError: when no module has the key
        """
        toggle = validate_request(ModuleToggleInput, toggle)
        for doc in (self._collection('modules')
                    .where(filter=FieldFilter('key', '==', toggle.module_key)).limit(1).stream()):
            return self.update('modules', doc.id, {'is_active': toggle.is_enabled})
        raise KeyError(f"Module {toggle.module_key} not found")

    def get_active_modules(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self._collection('modules').where(filter=FieldFilter('is_active', '==', True))
        if category:
            query = query.where(filter=FieldFilter('category', '==', category))
        return [self._to_item(doc) for doc in query.stream()]

    def ensure_defaults(self) -> int:
        """Seed the soil and leaf modules into an empty registry

        Returns:
            Number of modules created
        """
        for _ in self._collection('modules').limit(1).stream():
            return 0
        for module in DEFAULT_MODULES:
            self.create('modules', dict(module))
        self.logger.info(f"Seeded {len(DEFAULT_MODULES)} default analysis modules")
        return len(DEFAULT_MODULES)


_module_registry = None


def get_module_registry() -> ModuleRegistry:
    global _module_registry
    if _module_registry is None:
        _module_registry = ModuleRegistry()
    return _module_registry
