from datetime import datetime, timezone

import pytest

from utils.module_registry import ModuleRegistry
from utils.validation import RequestValidationError


def test_ensure_defaults_seeds_once(db):
    registry = ModuleRegistry(db=db)

    assert registry.ensure_defaults() == 2
    assert registry.ensure_defaults() == 0
    assert sorted(m['key'] for m in registry.get_active_modules()) == ['leaf_analysis', 'soil_analysis']
    assert [m['key'] for m in registry.get_active_modules('leaf')] == ['leaf_analysis']


def test_create_applies_defaults(db):
    registry = ModuleRegistry(db=db)

    source = registry.create('reference_sources', {'name': 'MPOB journal'})

    assert source['trust_score'] == 0.8
    assert source['update_frequency'] == 'manual'
    assert db.docs('reference_sources')[source['id']]['name'] == 'MPOB journal'


def test_create_validation(db):
    registry = ModuleRegistry(db=db)
    with pytest.raises(ValueError):
        registry.create('modules', {'description': 'no name'})
    with pytest.raises(ValueError):
        registry.create('modules', {'name': 'Weather', 'category': 'weather'})
    with pytest.raises(ValueError):
        registry.create('plugins', {'name': 'x'})


def test_list_newest_first(db):
    db.seed('document_types', 'guide', {'name': 'Guide', 'created_at': datetime(2024, 1, 1, tzinfo=timezone.utc)})
    db.seed('document_types', 'rule', {'name': 'Regulation', 'created_at': datetime(2024, 2, 1, tzinfo=timezone.utc)})
    db.seed('document_types', 'draft', {'name': 'Draft'})
    registry = ModuleRegistry(db=db)

    listed = registry.list('document_types')
    assert [item['id'] for item in listed['document_types']] == ['rule', 'guide', 'draft']
    assert set(registry.list()) == {'modules', 'document_types', 'reference_sources'}


def test_update_and_delete(db):
    registry = ModuleRegistry(db=db)
    item = registry.create('modules', {'name': 'Economics', 'category': 'economic'})

    updated = registry.update('modules', item['id'], {'version': '1.1.0', 'created_at': None})
    assert updated['version'] == '1.1.0'
    assert updated['created_at'] is not None

    registry.delete('modules', item['id'])
    assert registry.list('modules')['modules'] == []

    with pytest.raises(KeyError):
        registry.update('modules', item['id'], {'version': '2.0.0'})


def test_toggle_module(db):
    registry = ModuleRegistry(db=db)
    registry.ensure_defaults()

    toggled = registry.toggle_module({'moduleKey': 'leaf_analysis', 'isEnabled': False})

    assert toggled['is_active'] is False
    assert [m['key'] for m in registry.get_active_modules()] == ['soil_analysis']

    registry.toggle_module({'module_key': 'leaf_analysis', 'is_enabled': True})
    assert len(registry.get_active_modules()) == 2


def test_toggle_unknown_module(db):
    registry = ModuleRegistry(db=db)
    with pytest.raises(KeyError):
        registry.toggle_module({'moduleKey': 'weather', 'isEnabled': True})
    with pytest.raises(RequestValidationError):
        registry.toggle_module({'moduleKey': 'weather'})
