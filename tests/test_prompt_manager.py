import pytest

from utils.prompt_manager import (
    PEAT_CONSTRAINTS,
    TENERA_CONSTRAINTS,
    DynamicPromptManager,
    PromptContext,
    validate_prompt_template,
)
from utils.validation import RequestValidationError

SOIL_TEMPLATE = {
    'name': 'Soil expert',
    'description': 'Detailed soil analysis prompt',
    'template': 'Analyze the soil sample as a senior Malaysian agronomist and answer in JSON.',
    'category': 'soil',
    'priority': 'high',
    'specificity_level': 'high',
}


class BrokenFirestore:
    def collection(self, name):
        raise RuntimeError('Firestore unavailable')


def test_fallback_prompt_when_no_templates(db):
    manager = DynamicPromptManager(db=db)
    prompt = manager.get_optimal_prompt(PromptContext(sample_type='leaf', user_priorities={'budget': 'low'}))

    assert 'years of experience in leaf analysis' in prompt
    assert 'Budget: low' in prompt
    assert 'Palm Variety: tenera' in prompt
    assert '"interpretation"' in prompt


def test_fallback_prompt_on_database_error():
    manager = DynamicPromptManager(db=BrokenFirestore())
    prompt = manager.get_optimal_prompt(PromptContext(sample_type='soil'))
    assert 'soil analysis' in prompt


def test_best_template_is_used_and_counted(db):
    manager = DynamicPromptManager(db=db)
    manager.create_template({**SOIL_TEMPLATE, 'name': 'Basic', 'priority': 'low', 'specificity_level': 'low',
                             'template': 'Basic soil analysis prompt text.'})
    best = manager.create_template(SOIL_TEMPLATE)

    prompt = manager.get_optimal_prompt(PromptContext(sample_type='soil', user_priorities={'soil_type': 'peat'}))

    assert prompt.startswith(SOIL_TEMPLATE['template'])
    assert prompt.endswith(TENERA_CONSTRAINTS + PEAT_CONSTRAINTS)
    assert db.docs('prompt_templates')[best['id']]['usage_count'] == 1


def test_templates_for_other_sample_types_are_ignored(db):
    manager = DynamicPromptManager(db=db)
    manager.create_template(SOIL_TEMPLATE)

    assert manager.get_active_templates('leaf') == []


def test_template_score():
    context = PromptContext(sample_type='soil')
    template = {
        'priority': 'high',
        'malaysian_context': True,
        'category': 'soil',
        'specificity_level': 'high',
        'scientific_rigor': 'high',
        'success_rate': 0.9,
    }
    assert DynamicPromptManager.calculate_template_score(template, context) == 109
    assert DynamicPromptManager.calculate_template_score({}, context) == 10


def test_context_modifications_for_budget_and_sustainability():
    context = PromptContext(sample_type='soil', user_priorities={
        'plantation_type': 'dura', 'budget': 'low', 'focus': 'sustainability'})
    modified = DynamicPromptManager.apply_context_modifications('Base', context)

    assert 'MALAYSIAN CONTEXT CONSTRAINTS' not in modified
    assert 'BUDGET CONSTRAINTS' in modified
    assert 'SUSTAINABILITY FOCUS' in modified


def test_create_template_validates_input(db):
    with pytest.raises(RequestValidationError):
        DynamicPromptManager(db=db).create_template({**SOIL_TEMPLATE, 'category': 'weather'})


def test_update_and_delete_template(db):
    manager = DynamicPromptManager(db=db)
    created = manager.create_template(SOIL_TEMPLATE)

    updated = manager.update_template(created['id'], {'is_active': False})
    assert updated['is_active'] is False
    assert manager.get_active_templates('soil') == []

    manager.delete_template(created['id'])
    assert manager.get_all_templates() == []

    with pytest.raises(KeyError):
        manager.update_template('missing', {'is_active': True})


def test_active_templates_are_cached(db):
    manager = DynamicPromptManager(db=db)
    manager.create_template(SOIL_TEMPLATE)
    assert len(manager.get_active_templates('soil')) == 1

    db.collection('prompt_templates').docs.clear()
    assert len(manager.get_active_templates('soil')) == 1

    manager.clear_cache()
    assert manager.get_active_templates('soil') == []


def test_template_analytics(db):
    manager = DynamicPromptManager(db=db)
    first = manager.create_template(SOIL_TEMPLATE)
    manager.create_template({**SOIL_TEMPLATE, 'name': 'Leaf expert', 'category': 'leaf', 'is_active': False})
    manager.update_template(first['id'], {'usage_count': 4})

    analytics = manager.get_template_analytics()

    assert analytics['total_templates'] == 2
    assert analytics['active_templates'] == 1
    assert analytics['average_success_rate'] == pytest.approx(0.8)
    assert analytics['most_used_template'] == 'Soil expert'
    assert analytics['category_distribution'] == {'soil': 1, 'leaf': 1}


def test_validate_prompt_template():
    result = validate_prompt_template('Analyze {sample_type} with {extra}', ['sample_type', 'unused'])

    assert result['valid']
    assert "Placeholder 'extra' is used in template but not declared" in result['warnings']
    assert "Variable 'unused' is declared but not used in template" in result['warnings']

    assert not validate_prompt_template('   ', [])['valid']
