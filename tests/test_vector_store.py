import pytest

from utils.vector_store import FirestoreVectorStore, InMemoryVectorStore


def records():
    return [
        {'document_id': 'd1', 'content': 'soil', 'embedding': [1.0, 0.0]},
        {'document_id': 'd2', 'content': 'leaf', 'embedding': [0.0, 1.0]},
        {'document_id': 'd1', 'content': 'lime', 'embedding': [0.8, 0.6]},
    ]


def test_in_memory_search_orders_by_similarity():
    store = InMemoryVectorStore()
    store.add(records())

    results = store.search([1.0, 0.1], top_k=2)

    assert [r['content'] for r in results] == ['soil', 'lime']
    assert results[0]['similarity'] == pytest.approx(0.995, abs=1e-3)


def test_in_memory_min_similarity():
    store = InMemoryVectorStore()
    store.add(records())
    assert [r['content'] for r in store.search([1.0, 0.0], top_k=5, min_similarity=0.5)] == ['soil', 'lime']


def test_in_memory_zero_top_k_returns_nothing():
    store = InMemoryVectorStore()
    store.add(records()[:1])
    assert store.search([1.0, 0.0], top_k=0) == []


def test_in_memory_delete_and_clear():
    store = InMemoryVectorStore()
    ids = store.add(records())
    assert len(set(ids)) == 3

    assert store.delete_where('d1') == 2
    assert store.count() == 1
    assert store.clear() == 1
    assert store.search([1.0, 0.0]) == []


def test_firestore_store_uses_nearest_neighbour_query(db):
    store = FirestoreVectorStore(db)
    store.add(records())

    results = store.search([1.0, 0.1], top_k=2, min_similarity=0.5)

    assert [r['content'] for r in results] == ['soil', 'lime']
    assert 'vector_distance' not in results[0]
    assert results[0]['embedding'] == [1.0, 0.0]


def test_firestore_store_delete_where(db):
    store = FirestoreVectorStore(db)
    store.add(records())

    assert store.delete_where('d1') == 2
    assert store.count() == 1
    assert store.clear() == 1
