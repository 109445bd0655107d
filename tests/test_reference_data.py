import pytest

from utils.config_manager import ConfigManager
from utils.reference_data import (
    LEAF_REFERENCE,
    SOIL_REFERENCE,
    classify_value,
    compare_with_reference,
    get_reference_data,
    reference_data_as_dict,
)


def test_soil_and_leaf_ranges():
    assert get_reference_data('soil')['pH'].optimal == (5.5, 6.5)
    assert get_reference_data('leaf')['N'].optimal == (2.6, 2.9)
    assert get_reference_data('leaf')['B'].unit == 'ppm'


def test_unknown_sample_type_is_rejected():
    with pytest.raises(ValueError):
        get_reference_data('water')


def test_returned_mapping_is_a_copy():
    data = get_reference_data('soil')
    data.pop('pH')
    assert 'pH' in SOIL_REFERENCE


def test_reference_dict_is_json_friendly():
    data = reference_data_as_dict('leaf')
    assert data['K'] == {
        'optimal': [1.0, 1.3],
        'unit': '%',
        'interpretation': LEAF_REFERENCE['K'].interpretation,
    }


def test_classify_value():
    item = SOIL_REFERENCE['pH']
    assert classify_value(5.0, item) == 'Deficient'
    assert classify_value(6.0, item) == 'Optimal'
    assert classify_value(7.2, item) == 'Excess'


def test_compare_with_reference_standardizes_names():
    comparison = compare_with_reference({'pH': 5.0, 'Nitrogen': '0.25', 'comments': 'none'}, 'soil')

    assert set(comparison) == {'pH', 'N'}
    assert comparison['pH']['status'] == 'Deficient'
    assert comparison['pH']['deviation_percent'] == pytest.approx(-9.1)
    assert comparison['N']['status'] == 'Optimal'
    assert comparison['N']['deviation_percent'] == 0.0


def test_mpob_standards_follow_reference_tables(tmp_path):
    standards = ConfigManager(config_dir=str(tmp_path)).get_mpob_standards()

    ph = standards.soil_standards['pH']
    assert (ph.min_value, ph.max_value) == (5.5, 6.5)
    assert ph.optimal_value == 6.0
    assert ph.critical
    assert not standards.leaf_standards['Ca'].critical
    assert standards.for_sample('leaf') is standards.leaf_standards
