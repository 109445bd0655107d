from types import SimpleNamespace

import pytest

from fakes import FakeEmbeddings
from utils.rag_service import (
    GENERAL_MALAYSIAN_CONTEXT,
    EnhancedRAGService,
    calculate_confidence_score,
    calculate_malaysian_context_score,
    calculate_scientific_rigor_score,
    get_malaysian_oil_palm_context,
)
from utils.vector_store import InMemoryVectorStore

MALAYSIAN_CHUNK = (
    "MPOB and FELDA field research in Johor, Pahang, Sabah and Sarawak (2019) et al. found soil pH below 4.5 "
    "on Ultisols reduced FFB yield by 12% under RSPO and MSPO certification."
)
GENERIC_CHUNK = "Soil affects nutrient availability in many crops."


def knowledge_base(*texts):
    embeddings = FakeEmbeddings()
    store = InMemoryVectorStore()
    store.add([
        {'document_id': f'd{i}', 'content': text, 'embedding': embeddings.embed_query(text),
         'metadata': {'filename': f'doc{i}.pdf'}}
        for i, text in enumerate(texts)
    ])
    return SimpleNamespace(embeddings=embeddings, vector_store=store)


def test_malaysian_context_score():
    assert calculate_malaysian_context_score('') == 0
    low = calculate_malaysian_context_score('Soil pH in Johor')
    high = calculate_malaysian_context_score('MPOB trials in Johor and Sabah under RSPO on Ultisols')
    assert 0 < low < high <= 1


def test_scientific_rigor_score():
    score = calculate_scientific_rigor_score('Published research (2020) et al. showed a 15% increase')
    assert score == pytest.approx(0.7)
    assert calculate_scientific_rigor_score('palm') == 0


def test_confidence_is_capped():
    assert calculate_confidence_score(1.0, 1.0, 1.0) == pytest.approx(1.0)
    assert calculate_confidence_score(0.8, 0.5, 0.0) == pytest.approx(0.55)


def test_curated_context_by_keyword():
    contexts = get_malaysian_oil_palm_context('leaf deficiency', 5)
    assert [c.source for c in contexts] == ['MPOB Technical Guidelines']
    assert get_malaysian_oil_palm_context('market prices', 5) == [GENERAL_MALAYSIAN_CONTEXT]
    assert len(get_malaysian_oil_palm_context('soil yield fertilizer', 2)) == 2


def test_query_reranks_by_malaysian_context():
    service = EnhancedRAGService(reference_manager=knowledge_base(GENERIC_CHUNK, MALAYSIAN_CHUNK))

    contexts = service.query_with_malaysian_context('soil pH', limit=2, min_relevance_score=0.0)

    assert contexts[0].content == MALAYSIAN_CHUNK
    assert contexts[0].source == 'doc1.pdf'
    assert contexts[0].malaysian_context_score > contexts[1].malaysian_context_score


def test_query_returns_simple_dicts():
    service = EnhancedRAGService(reference_manager=knowledge_base(MALAYSIAN_CHUNK))
    results = service.query(MALAYSIAN_CHUNK, limit=1)
    assert set(results[0]) == {'content', 'score', 'source'}


def test_without_embeddings_uses_keyword_search():
    manager = knowledge_base(GENERIC_CHUNK, MALAYSIAN_CHUNK)
    manager.embeddings = None
    service = EnhancedRAGService(reference_manager=manager)

    contexts = service.query_with_malaysian_context('Ultisols yield', limit=3)

    assert [c.content for c in contexts] == [MALAYSIAN_CHUNK]
    assert contexts[0].relevance == 0.6


def test_keyword_search_falls_back_to_curated_context():
    manager = knowledge_base(GENERIC_CHUNK)
    manager.embeddings = None
    service = EnhancedRAGService(reference_manager=manager)

    contexts = service.fallback_text_search('ganoderma disease', 3)

    assert contexts[0].source == 'MPOB Plant Protection Division'


def test_embedding_failure_falls_back():
    class BrokenEmbeddings:
        def embed_query(self, text):
            raise RuntimeError('embedding service down')

    service = EnhancedRAGService(reference_manager=knowledge_base(MALAYSIAN_CHUNK), embeddings=BrokenEmbeddings())

    contexts = service.query_with_malaysian_context('soil ph', limit=2)

    assert contexts
    assert contexts[0].content == MALAYSIAN_CHUNK
