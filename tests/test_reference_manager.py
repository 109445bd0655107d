import pytest

from utils.config_manager import RAGConfig
from utils.document_processor import DocumentProcessingError
from utils.reference_manager import (
    ReferenceDocumentManager,
    calculate_processing_priority,
    categorize_document,
    estimate_token_count,
    extract_source,
    extract_title,
    generate_document_code,
    generate_standardized_name,
    standardize_document_metadata,
)
from utils.vector_store import FirestoreVectorStore, InMemoryVectorStore

SOIL_GUIDE = (
    b"Soil pH management for Malaysian oil palm on Ultisols. "
    b"Apply ground magnesium limestone to acidic soil before planting Tenera seedlings."
)


class StubBucket:
    def blob(self, path):
        return StubBlob(path)


class StubBlob:
    def __init__(self, path):
        self.path = path

    def generate_signed_url(self, expiration):
        return f"https://storage.example/{self.path}?expires={int(expiration.total_seconds())}"


@pytest.fixture
def manager(db, embeddings):
    manager = ReferenceDocumentManager(db=db, embeddings=embeddings, vector_store=InMemoryVectorStore(),
                                       storage_bucket=StubBucket())
    manager.rag_config = RAGConfig(min_similarity=0.0)
    return manager


def test_process_document_stores_document_and_chunks(manager, db):
    doc_id = manager.process_document(SOIL_GUIDE, 'soil_ph_guide.txt')

    stored = db.docs('reference_documents')[doc_id]
    assert stored['title'] == 'soil ph guide'
    assert stored['source'] == 'Reference Document'
    assert stored['metadata']['category'] == 'soil_analysis'
    assert stored['metadata']['chunk_count'] == 1
    assert stored['metadata']['content_type'] == 'text/plain'

    chunks = manager.vector_store.all()
    assert len(chunks) == 1
    assert chunks[0]['document_id'] == doc_id
    assert chunks[0]['token_count'] == estimate_token_count(SOIL_GUIDE.decode())


def test_same_content_is_not_stored_twice(manager):
    first = manager.process_document(SOIL_GUIDE, 'soil_ph_guide.txt')
    second = manager.process_document(SOIL_GUIDE, 'copy_of_guide.txt')

    assert first == second
    assert manager.vector_store.count() == 1


def test_empty_document_is_rejected(manager):
    with pytest.raises(DocumentProcessingError):
        manager.process_document(b'', 'empty.txt')


def test_failed_chunk_write_leaves_no_document_behind(db, embeddings):
    manager = ReferenceDocumentManager(db=db, embeddings=embeddings, vector_store=FirestoreVectorStore(db))
    db.read_only.add('document_embeddings')

    with pytest.raises(RuntimeError):
        manager.process_document(SOIL_GUIDE, 'liming_guide.txt')
    assert db.docs('reference_documents') == {}

    db.read_only.clear()
    doc_id = manager.process_document(SOIL_GUIDE, 'liming_guide.txt')

    assert list(db.docs('reference_documents')) == [doc_id]
    assert [c['document_id'] for c in db.docs('document_embeddings').values()] == [doc_id]


def test_search_joins_document_details(manager):
    doc_id = manager.process_document(SOIL_GUIDE, 'soil_ph_guide.txt')

    results = manager.search_relevant_documents('soil pH lime', top_k=3)

    assert len(results) == 1
    assert results[0]['document_id'] == doc_id
    assert results[0]['document_title'] == 'soil ph guide'
    assert results[0]['similarity'] > 0

    context = manager.get_context_for_query('soil pH lime')
    assert context.startswith('[Reference 1 from Reference Document')


def test_enhanced_context_adds_download_url(manager, db):
    doc_id = manager.process_document(SOIL_GUIDE, 'soil_ph_guide.txt')
    db.collection('reference_documents').docs[doc_id]['metadata']['storage_path'] = 'docs/soil.pdf'

    enhanced = manager.get_enhanced_rag_context('soil pH lime', 5)

    assert enhanced[0]['document_metadata']['category'] == 'soil_analysis'
    assert enhanced[0]['document_url'] == 'https://storage.example/docs/soil.pdf?expires=3600'


def test_remove_document(manager, db):
    doc_id = manager.process_document(SOIL_GUIDE, 'soil_ph_guide.txt')

    manager.remove_document(doc_id)

    assert manager.vector_store.count() == 0
    assert doc_id not in db.docs('reference_documents')


def test_stats_and_analytics(manager):
    manager.process_document(SOIL_GUIDE, 'soil_ph_guide.txt')

    stats = manager.get_stats()
    assert stats['document_count'] == 1
    assert stats['embedding_count'] == 1
    assert stats['active_document_count'] == 1

    analytics = manager.get_analytics_data()
    assert analytics['total_documents'] == 1
    assert analytics['average_chunks_per_document'] == 1
    assert analytics['document_types'] == {'general_reference': 1}


def test_load_all_documents_skips_unusable_files(manager, tmp_path):
    papers = tmp_path / 'research_papers'
    papers.mkdir()
    (papers / 'leaf_study.txt').write_bytes(b'Frond 17 sampling research in Sabah plantations.')
    (papers / 'empty.md').write_bytes(b'')
    (papers / 'data.csv').write_bytes(b'a,b\n1,2\n')

    ids = manager.load_all_documents(str(tmp_path))

    assert len(ids) == 1
    stored = manager.list_documents()[0]
    assert stored['source'] == 'Research Paper'
    assert stored['document_type'] == 'research_paper'


def test_missing_documents_directory(manager, tmp_path):
    assert manager.load_all_documents(str(tmp_path / 'missing')) == []


def test_rebuild_embeddings_replaces_everything(manager, tmp_path):
    manager.process_document(SOIL_GUIDE, 'soil_ph_guide.txt')
    (tmp_path / 'fertilizer_guide.txt').write_bytes(b'NPK fertilizer rates for mature palms in Johor.')

    ids = manager.rebuild_embeddings(str(tmp_path))

    assert len(ids) == 1
    assert [d['id'] for d in manager.list_documents()] == ids
    assert manager.vector_store.count() == 1


def test_naming_helpers():
    assert extract_title('best_practice-guide.pdf') == 'best practice guide'
    assert extract_source('docs/disease_guides/ganoderma.pdf') == 'Disease Guide'
    assert categorize_document('Foliar_Survey.pdf') == 'leaf_analysis'
    assert calculate_processing_priority('soil_mpob_2024.pdf') == 10
    assert calculate_processing_priority('notes.pdf') == 5
    assert estimate_token_count('abcde') == 2

    code = generate_document_code('soil_guide.pdf')
    assert code == generate_document_code('soil_guide.pdf')
    assert 1 <= len(code) <= 4 and code == code.upper()
    assert generate_standardized_name('Soil Fertility Guide.pdf').startswith('soil_')


def test_standardize_document_metadata():
    metadata = standardize_document_metadata('Leaf_Guide.pdf', 'Frond sampling across Sabah estates')

    assert metadata['category'] == 'leaf_analysis'
    assert metadata['region'] == 'east_malaysia'
    assert metadata['standardized_name'].startswith('leaf_')
    assert 'foliar_nutrition' in metadata['keywords']

    general = standardize_document_metadata('overview.pdf', 'Palm oil history')
    assert general['category'] == 'general'
    assert general['standardized_name'] == 'overview.pdf'
