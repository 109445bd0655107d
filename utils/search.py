"""
Cross-collection search over analyses, reference documents, feedback and
prompt templates, with relevance scoring, facets and suggestions.

Firestore has no substring queries, so each collection is streamed and
matched in memory.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from utils.analysis_store import _as_utc
from utils.cache import SearchCache
from utils.firebase_config import COLLECTIONS, get_firestore_client
from utils.parameter_standardizer import levenshtein_distance
from utils.validation import SearchParams, validate_request

logger = logging.getLogger(__name__)

DEFAULT_TABLES = ['analysis_reports', 'reference_documents', 'user_feedback', 'prompt_templates']
MAX_SCAN = 500
MAX_SUGGESTIONS = 5

# (field path, weight) per collection
SEARCHABLE_FIELDS = {
    'analysis_reports': [
        ('sample_type', 3),
        ('metadata.sample_location', 2),
        ('analysis_result.interpretation', 2),
        ('metadata.notes', 1),
    ],
    'reference_documents': [
        ('title', 3),
        ('metadata.filename', 2),
        ('description', 2),
        ('metadata.category', 1),
    ],
    'user_feedback': [
        ('title', 3),
        ('description', 2),
        ('type', 1),
    ],
    'prompt_templates': [
        ('name', 3),
        ('description', 2),
        ('template', 1),
    ],
}

GENERIC_FIELDS = [('title', 3), ('name', 3), ('description', 2)]

# Tables that carry each filterable column; other tables ignore the filter
CATEGORY_TABLES = {'analysis_reports', 'reference_documents', 'prompt_templates'}
STATUS_TABLES = {'analysis_reports', 'reference_documents'}
LOCATION_TABLES = {'analysis_reports'}


def get_field(item: Dict[str, Any], path: str) -> Any:
    value: Any = item
    for part in path.split('.'):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def calculate_relevance_score(item: Dict[str, Any], query: str, table: str) -> float:
    """Weighted share of query terms found in the item's searchable fields

    An exact field match earns the field's full weight, a substring match half of it.
    """
    terms = query.lower().split()
    score = 0.0
    total_possible = 0.0
    for path, weight in SEARCHABLE_FIELDS.get(table, GENERIC_FIELDS):
        value = get_field(item, path)
        if not value:
            continue
        field_text = str(value).lower()
        for term in terms:
            total_possible += weight
            if field_text == term:
                score += weight
            elif term in field_text:
                score += weight * 0.5
    return score / total_possible if total_possible > 0 else 0


def transform_result(item: Dict[str, Any], table: str, query: Optional[str] = None) -> Dict[str, Any]:
    base = {
        'id': item.get('id'),
        'table': table,
        'created_at': item.get('created_at'),
        'updated_at': item.get('updated_at'),
        'relevance_score': calculate_relevance_score(item, query, table) if query else 1,
        'data': item,
    }
    metadata = item.get('metadata') or {}

    if table == 'analysis_reports':
        sample_type = item.get('sample_type') or 'unknown'
        location = metadata.get('sample_location')
        return {
            **base,
            'title': f"{sample_type.title()} Analysis - {location or 'Unknown Location'}",
            'description': get_field(item, 'analysis_result.interpretation') or metadata.get('notes'),
            'category': sample_type,
            'location': location,
            'status': item.get('status'),
            'tags': [item['risk_level']] if item.get('risk_level') else [],
        }
    if table == 'reference_documents':
        return {
            **base,
            'title': item.get('title') or metadata.get('filename'),
            'description': item.get('description'),
            'category': metadata.get('category') or item.get('document_type'),
            'location': None,
            'status': 'active' if item.get('is_active') else 'inactive',
            'tags': metadata.get('keywords') or [],
        }
    if table == 'user_feedback':
        return {
            **base,
            'title': item.get('title') or f"Feedback on {item.get('analysis_id') or 'analysis'}",
            'description': item.get('description') or item.get('written_feedback'),
            'category': item.get('type') or item.get('kind'),
            'location': None,
            'status': item.get('status') or 'pending',
            'tags': [item['category']] if item.get('category') else [],
        }
    if table == 'prompt_templates':
        return {
            **base,
            'title': item.get('name'),
            'description': item.get('description'),
            'category': item.get('category'),
            'location': None,
            'status': 'active' if item.get('is_active') else 'inactive',
            'tags': item.get('variables') or [],
        }
    return {
        **base,
        'title': item.get('title') or item.get('name') or f"{table} #{item.get('id')}",
        'description': item.get('description') or item.get('notes'),
        'category': item.get('category') or table,
        'location': item.get('location'),
        'status': item.get('status'),
        'tags': item.get('tags') or [],
    }


def _sort_key(result: Dict[str, Any], sort_by: str):
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    if sort_by == 'created_at':
        return _as_utc(result.get('created_at')) or epoch
    if sort_by == 'updated_at':
        return _as_utc(result.get('updated_at') or result.get('created_at')) or epoch
    if sort_by == 'title':
        return (result.get('title') or '').lower()
    return result.get('relevance_score') or 0


def sort_results(results: List[Dict[str, Any]], sort_by: str, sort_order: str) -> List[Dict[str, Any]]:
    return sorted(results, key=lambda r: _sort_key(r, sort_by), reverse=sort_order == 'desc')


def build_facets(results: List[Dict[str, Any]]) -> Dict[str, Dict[str, int]]:
    facets = {'categories': {}, 'locations': {}, 'statuses': {}, 'tags': {}}
    for result in results:
        for key, facet in (('category', 'categories'), ('location', 'locations'), ('status', 'statuses')):
            value = result.get(key)
            if value:
                facets[facet][value] = facets[facet].get(value, 0) + 1
        for tag in result.get('tags') or []:
            facets['tags'][tag] = facets['tags'].get(tag, 0) + 1
    return facets


class SearchService:
    """Search across the application's Firestore collections"""

    def __init__(self, db=None, cache: Optional[SearchCache] = None):
        self.logger = logging.getLogger(f"{__name__}.SearchService")
        self.db = db if db is not None else get_firestore_client()
        self.cache = cache

    def _load(self, table: str) -> List[Dict[str, Any]]:
        if self.db is None:
            raise RuntimeError("Firestore is not available")
        items = []
        for doc in self.db.collection(COLLECTIONS.get(table, table)).limit(MAX_SCAN).stream():
            data = doc.to_dict() or {}
            data['id'] = doc.id
            items.append(data)
        return items

    @staticmethod
    def matches(item: Dict[str, Any], table: str, params: SearchParams) -> bool:
        result = transform_result(item, table)

        if params.query:
            needle = params.query.lower()
            fields = SEARCHABLE_FIELDS.get(table, GENERIC_FIELDS)
            if not any(needle in str(get_field(item, path) or '').lower() for path, _ in fields):
                return False
        if params.category and table in CATEGORY_TABLES and result['category'] not in params.category:
            return False
        if params.status and table in STATUS_TABLES and result['status'] not in params.status:
            return False
        if params.location and table in LOCATION_TABLES and params.location.lower() not in (result['location'] or '').lower():
            return False
        if params.tags and not set(params.tags) & set(result['tags']):
            return False
        if params.date_range:
            created = _as_utc(item.get('created_at'))
            start = _as_utc(params.date_range.start)
            end = _as_utc(params.date_range.end)
            if created is None or (start and created < start) or (end and created > end):
                return False
        for field, expected in params.filters.items():
            if get_field(item, field) != expected:
                return False
        return True

    def search_table(self, table: str, params: SearchParams) -> List[Dict[str, Any]]:
        try:
            items = self._load(table)
        except Exception as e:
            self.logger.error(f"Error searching {table}: {e}")
            return []
        return [transform_result(item, table, params.query) for item in items if self.matches(item, table, params)]

    def search(self, params) -> Dict[str, Any]:
        """Search, facet, sort and paginate

        Args:
            params: SearchParams or a dict accepted by it

        Returns:
            {results, total, facets, suggestions, query}
        """
        params = validate_request(SearchParams, params or {})
        cache_filters = params.model_dump(exclude={'query'})
        if self.cache is not None:
            cached = self.cache.get_cached_search_results(params.query or '', cache_filters)
            if cached is not None:
                return cached

        results = []
        for table in params.tables or DEFAULT_TABLES:
            results.extend(self.search_table(table, params))

        ordered = sort_results(results, params.sort_by, params.sort_order)
        response = {
            'results': ordered[params.offset:params.offset + params.limit],
            'total': len(results),
            'facets': build_facets(results),
            'suggestions': self.generate_suggestions(params.query) if not results and params.query else [],
            'query': params.model_dump(),
        }
        if self.cache is not None:
            self.cache.cache_search_results(params.query or '', cache_filters, response)
        return response

    def generate_suggestions(self, query: str) -> List[str]:
        """Known terms close to a query that found nothing"""
        terms = set()
        try:
            for item in self._load('analysis_reports')[:100]:
                if item.get('sample_type'):
                    terms.add(str(item['sample_type']).lower())
                location = get_field(item, 'metadata.sample_location')
                if location:
                    terms.add(str(location).lower())
            for item in self._load('reference_documents')[:100]:
                category = get_field(item, 'metadata.category')
                if category:
                    terms.add(str(category).lower())
                title = item.get('title') or ''
                for word in title.lower().replace('_', ' ').replace('-', ' ').split():
                    if len(word) > 3:
                        terms.add(word)
        except Exception as e:
            self.logger.error(f"Error generating suggestions: {e}")
            return []

        query_lower = query.lower()
        similar = [term for term in sorted(terms)
                   if term in query_lower or query_lower in term or levenshtein_distance(term, query_lower) <= 2]
        return similar[:MAX_SUGGESTIONS]


_search_service = None


def get_search_service() -> SearchService:
    global _search_service
    if _search_service is None:
        from utils.cache import search_cache
        _search_service = SearchService(cache=search_cache)
    return _search_service
