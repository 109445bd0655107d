"""
Vector storage for knowledge-base chunks.

InMemoryVectorStore keeps embeddings in numpy arrays; FirestoreVectorStore
keeps them in the document_embeddings collection and uses Firestore's
nearest-neighbour search. Both return chunk dicts with a 'similarity' key.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

import numpy as np

from utils.firebase_config import COLLECTIONS, FieldFilter

logger = logging.getLogger(__name__)

DISTANCE_FIELD = "vector_distance"


def cosine_similarities(query_vector: List[float], matrix: np.ndarray) -> np.ndarray:
    query = np.asarray(query_vector, dtype=float)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    with np.errstate(divide='ignore', invalid='ignore'):
        scores = np.where(norms > 0, matrix @ query / norms, 0.0)
    return scores


class InMemoryVectorStore:
    """Process-local store, used when Firestore is not configured and in tests"""

    def __init__(self):
        self._records: List[Dict[str, Any]] = []

    def add(self, records: List[Dict[str, Any]]) -> List[str]:
        ids = []
        for record in records:
            stored = dict(record)
            stored.setdefault('id', uuid.uuid4().hex)
            stored['embedding'] = [float(x) for x in stored['embedding']]
            self._records.append(stored)
            ids.append(stored['id'])
        return ids

    def delete_where(self, document_id: str) -> int:
        before = len(self._records)
        self._records = [r for r in self._records if r.get('document_id') != document_id]
        return before - len(self._records)

    def clear(self) -> int:
        removed = len(self._records)
        self._records = []
        return removed

    def all(self) -> List[Dict[str, Any]]:
        return [dict(r) for r in self._records]

    def count(self) -> int:
        return len(self._records)

    def search(self, query_vector: List[float], top_k: int = 5, min_similarity: float = 0.0) -> List[Dict[str, Any]]:
        if not self._records or top_k <= 0:
            return []
        matrix = np.array([r['embedding'] for r in self._records], dtype=float)
        scores = cosine_similarities(query_vector, matrix)
        order = np.argsort(-scores)
        results = []
        for index in order:
            score = float(scores[index])
            if score < min_similarity:
                break
            result = dict(self._records[index])
            result['similarity'] = score
            results.append(result)
            if len(results) >= top_k:
                break
        return results


class FirestoreVectorStore:
    """Chunks in Firestore with embeddings stored as Vector values"""

    def __init__(self, db, collection: Optional[str] = None):
        self.logger = logging.getLogger(f"{__name__}.FirestoreVectorStore")
        self.db = db
        self.collection_name = collection or COLLECTIONS['document_embeddings']

    @property
    def collection(self):
        return self.db.collection(self.collection_name)

    def add(self, records: List[Dict[str, Any]]) -> List[str]:
        from google.cloud.firestore_v1.vector import Vector

        ids = []
        for record in records:
            data = dict(record)
            doc_id = data.pop('id', None) or uuid.uuid4().hex
            data['embedding'] = Vector([float(x) for x in data['embedding']])
            self.collection.document(doc_id).set(data)
            ids.append(doc_id)
        return ids

    def delete_where(self, document_id: str) -> int:
        docs = self.collection.where(filter=FieldFilter('document_id', '==', document_id)).stream()
        removed = 0
        for doc in docs:
            doc.reference.delete()
            removed += 1
        return removed

    def clear(self) -> int:
        removed = 0
        for doc in self.collection.stream():
            doc.reference.delete()
            removed += 1
        return removed

    @staticmethod
    def _to_record(doc) -> Dict[str, Any]:
        data = doc.to_dict() or {}
        data['id'] = doc.id
        embedding = data.get('embedding')
        if embedding is not None:
            data['embedding'] = list(embedding)
        return data

    def all(self) -> List[Dict[str, Any]]:
        return [self._to_record(doc) for doc in self.collection.stream()]

    def count(self) -> int:
        return sum(1 for _ in self.collection.stream())

    def search(self, query_vector: List[float], top_k: int = 5, min_similarity: float = 0.0) -> List[Dict[str, Any]]:
        from google.cloud.firestore_v1.base_vector_query import DistanceMeasure
        from google.cloud.firestore_v1.vector import Vector

        query = self.collection.find_nearest(
            vector_field="embedding",
            query_vector=Vector([float(x) for x in query_vector]),
            distance_measure=DistanceMeasure.COSINE,
            limit=top_k,
            distance_result_field=DISTANCE_FIELD,
        )
        results = []
        for doc in query.stream():
            record = self._to_record(doc)
            distance = record.pop(DISTANCE_FIELD, None)
            similarity = 1.0 - float(distance) if distance is not None else 0.0
            if similarity < min_similarity:
                continue
            record['similarity'] = similarity
            results.append(record)
        results.sort(key=lambda r: r['similarity'], reverse=True)
        return results
