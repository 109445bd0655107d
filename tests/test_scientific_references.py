from utils.scientific_references import ScientificReferenceService, get_curated_references
from utils.validation import ScientificReference


class BrokenFirestore:
    def collection(self, name):
        raise RuntimeError('Firestore unavailable')


def test_curated_soil_reference_follows_issues():
    acidity = get_curated_references('soil', ['Soil pH too low'])
    assert acidity[0]['title'] == 'Managing Soil Acidity in Malaysian Oil Palm Plantations'
    assert len(acidity) == 3

    nutrients = get_curated_references('soil', ['Potassium deficiency'])
    assert nutrients[0]['title'].startswith('Nutrient Management Strategies')
    assert nutrients[0]['relevance_score'] == 0.96


def test_curated_leaf_reference():
    refs = get_curated_references('leaf', [])
    assert refs[0]['id'] == 'ref_leaf_1'
    assert refs[0]['relevance_score'] == 0.92


def test_curated_references_validate_as_models():
    for ref in get_curated_references('leaf', ['nutrient deficiency']):
        ScientificReference.model_validate(ref)


def test_database_references_are_preferred(db):
    db.seed('scientific_references', 'r1', {
        'title': 'Liming trials on Ultisols', 'keywords': ['soil', 'liming'], 'is_active': True,
        'relevance_score': 0.7, 'year': 2021, 'application_notes': 'Supports lime rates',
    })
    db.seed('scientific_references', 'r2', {
        'title': 'Soil carbon under cover crops', 'keywords': ['soil'], 'is_active': True,
        'relevance_score': 0.9,
    })
    db.seed('scientific_references', 'r3', {
        'title': 'Retired study', 'keywords': ['soil'], 'is_active': False, 'relevance_score': 1.0,
    })

    result = ScientificReferenceService(db=db).get_references('soil', ['liming'])

    assert result['source'] == 'database'
    assert [r['id'] for r in result['references']] == ['r2', 'r1']
    assert result['references'][1]['application_to_analysis'] == 'Supports lime rates'
    assert result['references'][0]['journal'] == 'Unknown Journal'


def test_curated_when_database_has_nothing(db):
    result = ScientificReferenceService(db=db).get_references('leaf', ['boron deficiency'], limit=2)

    assert result['source'] == 'curated'
    assert result['total_found'] == 3
    assert len(result['references']) == 2


def test_basic_references_on_error():
    result = ScientificReferenceService(db=BrokenFirestore()).get_references('soil')

    assert result['success'] is True
    assert result['source'] == 'fallback'
    assert result['references'][0]['id'] == 'ref-basic-001'
