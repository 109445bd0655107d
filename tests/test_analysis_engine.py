import json

import pytest

from fakes import FakeLLM
from utils.analysis_engine import AdvancedAgronomistAnalyzer, AnalysisError
from utils.analysis_store import AnalysisStore
from utils.llm_client import LLMError
from utils.prompt_manager import DynamicPromptManager
from utils.scientific_references import ScientificReferenceService

SOIL_VALUES = {'pH': 4.8, 'N': 0.1, 'P': 8.0, 'K': 0.2}

MPOB_CHUNK = {
    'id': 'c1',
    'content': 'MPOB research on Malaysian Ultisols recommends 2 tons/ha of lime for acidic soils.',
    'metadata': {'category': 'soil_analysis'},
    'similarity': 0.82,
    'document_title': 'Liming guide',
    'document_source': 'Technical Guide',
    'chunk_index': 0,
}
GARDEN_CHUNK = {'id': 'c2', 'content': 'Water your roses weekly.', 'similarity': 0.7}


class StubReferenceManager:
    def __init__(self, documents=(), fail=False):
        self.documents = list(documents)
        self.fail = fail
        self.queries = []

    def search_relevant_documents(self, query, top_k=5):
        self.queries.append(query)
        if self.fail:
            raise RuntimeError('vector search unavailable')
        return [dict(doc) for doc in self.documents[:top_k]]

    def get_enhanced_rag_context(self, query, limit=5):
        if self.fail:
            raise RuntimeError('vector search unavailable')
        return [dict(doc) for doc in self.documents[:limit]]


class BrokenPromptManager:
    def get_optimal_prompt(self, context):
        raise RuntimeError('templates unavailable')


def analyzer_for(db, llm, documents=(), **overrides):
    collaborators = {
        'llm': llm,
        'reference_manager': StubReferenceManager(documents),
        'prompt_manager': DynamicPromptManager(db=db),
        'reference_service': ScientificReferenceService(db=db),
        'store': AnalysisStore(db=db),
    }
    collaborators.update(overrides)
    return AdvancedAgronomistAnalyzer(**collaborators)


def test_advanced_analysis_combines_calculations_and_model(db, valid_analysis):
    llm = FakeLLM(valid_analysis)
    analyzer = analyzer_for(db, llm, [MPOB_CHUNK])

    result = analyzer.analyze_data_advanced('soil', SOIL_VALUES, None, {'focus': 'yield'},
                                            land_size=25, historical_yield=[20.0, 22.0, 24.0])

    assert result['risk_level'] == 'High'
    assert result['confidence_score'] == 88
    assert result['improvement_plan'][0]['estimated_impact'].startswith('8-12%')
    assert 'ratios' in result['nutrient_balance']
    assert result['regional_benchmarking']['ranking_percentile'] == 30
    assert len(result['yield_forecast']['baseline']) == 5
    assert result['rag_context'][0]['document_title'] == 'Liming guide'
    assert result['scientific_references'][0]['title'] == 'Managing Soil Acidity in Malaysian Oil Palm Plantations'
    assert result['metadata']['land_size'] == 25

    report_id = result['metadata']['report_id']
    stored = db.docs('analysis_reports')[report_id]
    assert stored['sample_type'] == 'soil'
    assert stored['user_preferences']['focus'] == 'yield'

    prompt = llm.prompts[0]
    assert 'years of experience in soil analysis' in prompt
    assert 'CALCULATED NUTRIENT BALANCE' in prompt
    assert 'MPOB research on Malaysian Ultisols' in prompt
    assert 'Focus: yield' in prompt


def test_advanced_analysis_without_history_has_no_forecast(db, valid_analysis):
    result = analyzer_for(db, FakeLLM(valid_analysis)).analyze_data_advanced('leaf', {'N': 2.6}, None, {})

    assert 'yield_forecast' not in result
    assert 'rag_context' not in result
    assert result['regional_benchmarking']['ranking_percentile'] == 50


def test_advanced_analysis_failure_is_wrapped(db):
    analyzer = analyzer_for(db, FakeLLM())

    with pytest.raises(AnalysisError) as excinfo:
        analyzer.analyze_data_advanced('soil', SOIL_VALUES, None, {})

    assert str(excinfo.value) == 'Analysis failed: No response configured'
    assert isinstance(excinfo.value.cause, LLMError)
    assert db.docs('analysis_reports') == {}


def test_advanced_analysis_rejects_bad_priorities(db, valid_analysis):
    with pytest.raises(AnalysisError):
        analyzer_for(db, FakeLLM(valid_analysis)).analyze_data_advanced('soil', SOIL_VALUES, None,
                                                                        {'budget': 'unlimited'})


def test_advanced_analysis_survives_store_failure(db, valid_analysis):
    db.read_only.add('analysis_reports')
    result = analyzer_for(db, FakeLLM(valid_analysis)).analyze_data_advanced('soil', SOIL_VALUES, None, {})
    assert 'report_id' not in result['metadata']


def test_dynamic_prompt_falls_back_to_default(db):
    analyzer = analyzer_for(db, None, prompt_manager=BrokenPromptManager())
    prompt = analyzer.get_dynamic_prompt('leaf', {'language': 'ms', 'focus': 'cost'})
    assert 'in Bahasa Malaysia' in prompt
    assert 'Focus on: cost' in prompt


def test_analyze_data_success(db, valid_analysis):
    analyzer = analyzer_for(db, FakeLLM(valid_analysis), [MPOB_CHUNK, GARDEN_CHUNK])

    result = analyzer.analyze_data('soil', SOIL_VALUES)

    assert result['confidence_score'] == 88
    assert [doc['document_title'] for doc in result['rag_context']][0] == 'Liming guide'
    assert result['scientific_references'][0]['id'] == 'ref_soil_1'


def test_analyze_data_without_llm_returns_fallback(db, monkeypatch):
    monkeypatch.setattr('utils.llm_client.get_llm_client', lambda: None)
    result = AdvancedAgronomistAnalyzer(reference_manager=StubReferenceManager()).analyze_data('leaf', {'N': 2.0})
    assert result['confidence_score'] == 65
    assert result['risk_level'] == 'Medium'


@pytest.mark.parametrize('response', [LLMError('quota exceeded'), 'I cannot help with that', '{"issues": []}'])
def test_analyze_data_falls_back_on_bad_model_output(db, response):
    result = analyzer_for(db, FakeLLM(response)).analyze_data('soil', SOIL_VALUES)
    assert result['confidence_score'] == 65
    assert result['issues'] == ['Limited analysis due to processing constraints']


def test_validate_and_enhance_result_fills_gaps(db):
    analyzer = analyzer_for(db, None)
    result = analyzer.validate_and_enhance_result(
        {'interpretation': 'Too short', 'issues': ['Boron deficiency'], 'confidence_score': 40}, 'leaf')

    assert result['interpretation'].startswith('Analysis of leaf sample for Malaysian oil palm')
    assert result['improvement_plan'][0]['priority'] == 'High'
    assert result['confidence_score'] == 70
    assert 'rag_context' not in result
    assert result['scientific_references'][0]['title'].startswith('Diagnosing and Correcting')


def test_validate_and_enhance_result_keeps_good_values(db, valid_analysis):
    analyzer = analyzer_for(db, None, reference_manager=StubReferenceManager(fail=True))
    parsed = analyzer.parse_and_validate_response(json.dumps(valid_analysis))

    result = analyzer.validate_and_enhance_result(parsed, 'soil', [MPOB_CHUNK])

    assert result['confidence_score'] == 88
    assert result['interpretation'] == valid_analysis['interpretation']
    assert 'rag_context' not in result


def test_analyze_with_ocr_uses_model_extraction(db, valid_analysis):
    llm = FakeLLM({'pH': '4.6', 'Nitrogen': 0.2, 'colour': 'brown'}, valid_analysis)

    outcome = analyzer_for(db, llm).analyze_with_ocr('soil', 'Soil report pH 4.6 nitrogen 0.2')

    assert outcome['values'] == {'pH': 4.6, 'N': 0.2}
    assert outcome['analysis']['confidence_score'] == 88
    assert 'Soil report pH 4.6 nitrogen 0.2' in llm.prompts[0]


def test_analyze_with_ocr_regex_fallback(db, valid_analysis):
    text = 'pH: 4.6 Nitrogen 0.21 Phosphorus - 12 Potassium: 0.3'

    outcome = analyzer_for(db, FakeLLM('no json here', valid_analysis)).analyze_with_ocr('soil', text)
    assert outcome['values'] == {'pH': 4.6, 'N': 0.21, 'P': 12.0, 'K': 0.3}

    outcome = analyzer_for(db, FakeLLM()).analyze_with_ocr('soil', text)
    assert outcome['values']['K'] == 0.3
    assert outcome['analysis']['confidence_score'] == 65


def test_parse_and_validate_response():
    parse = AdvancedAgronomistAnalyzer.parse_and_validate_response
    fenced = ('```json\n{"interpretation": "ok", "issues": [], "improvementPlan": [], '
              '"riskLevel": "Low", "confidenceScore": "92"}\n```')

    assert parse(fenced)['confidence_score'] == 92.0
    assert parse(fenced.replace('"92"', '150'))['confidence_score'] == 85

    with pytest.raises(ValueError, match='Invalid analysis response format'):
        parse(fenced.replace('"Low"', '"Severe"'))
    with pytest.raises(ValueError, match='Invalid analysis response format'):
        parse('[1, 2]')


def test_search_queries():
    analyzer = AdvancedAgronomistAnalyzer
    assert analyzer.create_search_query('soil', {'pH': 4.2, 'N': 0.1, 'P': 20}) == (
        'oil palm soil analysis pH N P pH imbalance nitrogen deficiency fertilizer management soil preparation')

    standardized = analyzer.create_standardized_search_query('leaf', ['Boron deficiency!'])
    assert standardized.startswith('leaf_analysis_malaysia oil_palm_nutrition')
    assert 'boron_deficiency' in standardized.split()

    advanced = analyzer.create_advanced_search_query('soil', {'pH': 5.0}, {'focus': 'cost', 'soil_type': 'peat'})
    assert 'cost effective' in advanced
    assert 'peat soil' in advanced

    enhanced = analyzer.build_enhanced_query('soil ph', 'soil', {'pH': 4.0, 'N': 0.3})
    assert enhanced == 'soil ph soil analysis Malaysian oil palm pH MPOB guidelines'

    assert len(analyzer.generate_fallback_queries('soil', {'pH': 5.0, 'K': 0.2, 'Ca': 1.0})) == 7


def test_context_filters():
    analyzer = AdvancedAgronomistAnalyzer
    assert analyzer.validate_malaysian_context(MPOB_CHUNK)
    assert not analyzer.validate_malaysian_context(GARDEN_CHUNK)
    assert analyzer.validate_scientific_rigor({'content': 'Apply 25 kg/ha annually'})
    assert not analyzer.validate_scientific_rigor(GARDEN_CHUNK)


def test_enhanced_rag_context_widens_and_dedupes(db):
    manager = StubReferenceManager([MPOB_CHUNK, GARDEN_CHUNK])
    analyzer = analyzer_for(db, None, reference_manager=manager)

    results = analyzer.get_enhanced_rag_context('soil query', 'soil', SOIL_VALUES, 5)

    assert [r['id'] for r in results] == ['c1']
    assert len(manager.queries) > 1


def test_enhanced_rag_context_uses_curated_content_on_error(db):
    analyzer = analyzer_for(db, None, reference_manager=StubReferenceManager(fail=True))

    soil = analyzer.get_enhanced_rag_context('q', 'soil', {'pH': '4.2'})
    assert soil[0]['document_title'] == 'Malaysian Oil Palm Soil Management Guidelines'
    assert soil[0]['metadata']['ph_issue'] is True
    assert soil[0]['similarity'] == 0.85

    leaf = analyzer.get_enhanced_rag_context('q', 'leaf', {'Nitrogen': 2.1})
    assert leaf[0]['document_title'] == 'Malaysian Oil Palm Leaf Analysis Standards'
    assert leaf[0]['metadata']['deficiency_detected'] is True
