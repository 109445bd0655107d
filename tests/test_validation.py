import pytest

from utils.validation import (
    AnalysisResultModel,
    FeedbackInput,
    LeafAnalysisInput,
    RequestValidationError,
    SearchParams,
    SoilAnalysisInput,
    UserPriorities,
    safe_validate,
    validate_request,
)

SOIL_FORM = {
    'sampleLocation': 'Block A, Johor',
    'sampleDepth': 30,
    'ph': 4.8,
    'organicMatter': 2.1,
    'nitrogen': 0.18,
    'phosphorus': 12,
    'potassium': 0.2,
    'calcium': 1.5,
    'magnesium': 0.3,
    'sulfur': 0.1,
    'texture': 'clay',
}


def test_soil_input_accepts_camel_case_and_maps_values():
    sample = validate_request(SoilAnalysisInput, SOIL_FORM)

    assert sample.sample_location == 'Block A, Johor'
    values = sample.analysis_values()
    assert values['pH'] == 4.8
    assert values['OC'] == 2.1
    assert values['N'] == 0.18
    assert 'B' not in values


def test_soil_input_rejects_out_of_range_ph():
    with pytest.raises(RequestValidationError) as exc_info:
        validate_request(SoilAnalysisInput, {**SOIL_FORM, 'ph': 15})
    assert 'ph' in exc_info.value.details


def test_request_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        validate_request(LeafAnalysisInput, {'sample_location': ''})


def test_leaf_input():
    leaf = validate_request(LeafAnalysisInput, {
        'sample_location': 'Frond 17, Sabah',
        'leaf_age': 'mature',
        'plant_age': 8,
        'nitrogen': 2.4,
        'phosphorus': 0.15,
        'potassium': 0.9,
        'calcium': 0.6,
        'magnesium': 0.22,
        'sulfur': 0.2,
        'boron': 12,
    })
    assert leaf.analysis_values()['B'] == 12.0


def test_priorities_defaults():
    priorities = UserPriorities()
    assert priorities.focus == 'balanced'
    assert priorities.plantation_type == 'tenera'
    assert validate_request(UserPriorities, {'soilType': 'peat'}).soil_type == 'peat'


def test_safe_validate_reports_errors():
    result = safe_validate(FeedbackInput, {'type': 'bug', 'title': 'Crash', 'description': 'short',
                                           'category': 'ui'})
    assert result['success'] is False
    assert 'description' in result['error']


def test_search_params_defaults():
    params = validate_request(SearchParams, {'query': 'soil', 'sortBy': 'title'})
    assert params.sort_by == 'title'
    assert params.limit == 20
    assert params.offset == 0
    assert params.tables is None


def test_analysis_result_dumps_snake_case(valid_analysis):
    result = AnalysisResultModel.model_validate(valid_analysis).model_dump(exclude_none=True)

    assert result['risk_level'] == 'High'
    assert result['confidence_score'] == 88
    assert result['improvement_plan'][0]['estimated_impact'].startswith('8-12%')
    assert 'nutrient_balance' not in result


def test_analysis_result_rejects_unknown_risk(valid_analysis):
    valid_analysis['riskLevel'] = 'Severe'
    with pytest.raises(RequestValidationError):
        validate_request(AnalysisResultModel, valid_analysis)
