"""
Enhanced RAG service with Malaysian oil palm context scoring.

Retrieved chunks are re-ranked by how strongly they speak to Malaysian
plantation conditions and how scientific they read. When no vector search is
possible, a keyword search over stored chunks and then a curated set of
Malaysian references are used instead.
"""

import logging
import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from utils.config_manager import get_rag_config

logger = logging.getLogger(__name__)

MALAYSIAN_REGIONS = [
    'Peninsular Malaysia', 'Sabah', 'Sarawak', 'Johor', 'Pahang', 'Perak',
    'Selangor', 'Kedah', 'Kelantan', 'Terengganu', 'Perlis', 'Penang',
    'Melaka', 'Negeri Sembilan',
]

MALAYSIAN_INSTITUTIONS = [
    'MPOB', 'Malaysian Palm Oil Board', 'UPM', 'Universiti Putra Malaysia',
    'FELDA', 'FELCRA', 'Sime Darby', 'IOI Corporation', 'Kuala Lumpur Kepong',
]

CERTIFICATION_STANDARDS = [
    'RSPO', 'MSPO', 'ISPO', 'RTRS', 'Round Table on Sustainable Palm Oil',
    'Malaysian Sustainable Palm Oil', 'Indonesian Sustainable Palm Oil',
]

MALAYSIAN_SOIL_TYPES = [
    'Ultisols', 'Oxisols', 'Inceptisols', 'Entisols', 'Histosols',
    'mineral soils', 'peat soils', 'coastal soils',
]

MALAYSIAN_CLIMATE_TERMS = [
    'tropical rainforest', 'equatorial climate', 'monsoon', 'high humidity',
    'consistent temperature', 'wet season', 'dry season',
]

MALAYSIAN_DISEASES_PESTS = [
    'Ganoderma', 'BSR', 'Basal Stem Rot', 'rhinoceros beetle',
    'bagworm', 'leaf spot', 'crown disease', 'bunch rot',
]

# (terms, weight per term)
MALAYSIAN_TERM_WEIGHTS = [
    (MALAYSIAN_REGIONS, 10),
    (MALAYSIAN_INSTITUTIONS, 15),
    (CERTIFICATION_STANDARDS, 8),
    (MALAYSIAN_SOIL_TYPES, 5),
    (MALAYSIAN_CLIMATE_TERMS, 5),
    (MALAYSIAN_DISEASES_PESTS, 8),
]

PEER_REVIEW_TERMS = ['peer-reviewed', 'journal', 'published', 'research', 'study']
STATISTICAL_TERMS = ['p-value', 'significant', 'correlation', 'regression', 'analysis']
QUANTITATIVE_PATTERNS = [re.compile(p) for p in (r'\d+%', r'\d+\.\d+', r'±\d+', r'n\s*=\s*\d+')]
CITATION_PATTERNS = [re.compile(p) for p in (r'\[\d+\]', r'\(\d{4}\)', r'et al\.', r'doi:')]
METHODOLOGY_TERMS = ['methodology', 'protocol', 'experimental', 'control group']

DEFAULT_RELEVANCE = 0.7
TEXT_SEARCH_RELEVANCE = 0.6


@dataclass
class RAGContext:
    content: str
    relevance: float
    confidence: float
    source: str
    malaysian_context_score: float
    scientific_rigor: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _curated(content, relevance, confidence, source, malaysian, rigor) -> RAGContext:
    return RAGContext(content, relevance, confidence, source, malaysian, rigor)


# (trigger words, context) in presentation order
CURATED_MALAYSIAN_CONTEXTS = [
    (('soil', 'ph', 'nutrient'), _curated(
        "Malaysian oil palm cultivation requires specific soil conditions. Optimal pH ranges from 4.0-6.0 for most "
        "Malaysian soils. Peninsular Malaysia predominantly has Ultisols and Oxisols, while Sabah and Sarawak have "
        "varied soil types including peat soils. Key nutrients include N (120-150 kg/ha/year), P (15-25 kg/ha/year), "
        "and K (100-120 kg/ha/year) according to MPOB guidelines. Magnesium deficiency is common in Malaysian "
        "plantations, requiring regular monitoring and supplementation.",
        0.9, 0.85, 'MPOB Guidelines', 0.95, 0.8)),
    (('leaf', 'foliar', 'deficiency'), _curated(
        "Oil palm leaf analysis in Malaysia follows MPOB standards. Critical nutrient levels for frond 17: "
        "N (2.5-2.8%), P (0.15-0.18%), K (0.8-1.2%), Mg (0.25-0.35%), Ca (0.5-0.7%). Boron deficiency is "
        "particularly problematic in Malaysian conditions, requiring 2-4 kg/ha annually. Leaf sampling should be "
        "conducted during dry periods, avoiding the first 2 months after heavy fertilization.",
        0.9, 0.85, 'MPOB Technical Guidelines', 0.98, 0.8)),
    (('climate', 'rainfall', 'temperature'), _curated(
        "Malaysian tropical climate with 2000-3000mm annual rainfall supports oil palm growth. Temperature ranges "
        "26-28°C optimal. Two monsoon seasons affect nutrient management: Northeast (Nov-Mar) and Southwest "
        "(May-Sep). High humidity (80-90%) increases disease pressure, particularly Ganoderma and BSR. Climate "
        "change adaptation requires drought-resistant varieties and improved water management.",
        0.8, 0.8, 'Malaysian Meteorological Department', 1.0, 0.75)),
    (('yield', 'productivity', 'ffb'), _curated(
        "Malaysian oil palm average yield is 20-25 tons FFB/ha/year. Top performers achieve 30+ tons/ha. Yield "
        "factors include: genetics (DxP hybrid), age (peak at 8-15 years), nutrition management, and pest/disease "
        "control. RSPO and MSPO certification standards ensure sustainable practices. Precision agriculture and IoT "
        "monitoring increasingly adopted by large plantations.",
        0.85, 0.8, 'MPOB Statistics', 0.95, 0.8)),
    (('fertilizer', 'npk', 'nutrition'), _curated(
        "Malaysian oil palm fertilizer recommendations vary by soil type and region. Peninsular Malaysia: NPK "
        "15:15:6:4 + TE, 2-3 kg/palm/year. East Malaysia peat soils require modified formulations with higher K and "
        "Mg. Split applications 3-4 times annually during dry periods. Organic matter incorporation essential for "
        "soil health. EFB (Empty Fruit Bunches) composting widely practiced.",
        0.9, 0.85, 'MPOB Best Practices', 0.98, 0.8)),
    (('disease', 'pest', 'ganoderma'), _curated(
        "Major oil palm diseases in Malaysia: Ganoderma (basal stem rot), Upper stem rot, Blast disease. Ganoderma "
        "particularly severe in replanting areas. Prevention includes soil treatment, resistant planting materials, "
        "and sanitation. Integrated Pest Management (IPM) essential for bagworm, rhinoceros beetle, and rat "
        "control. Beneficial insects conservation programs show promising results.",
        0.85, 0.8, 'MPOB Plant Protection Division', 0.95, 0.8)),
]

GENERAL_MALAYSIAN_CONTEXT = _curated(
    "Malaysian oil palm industry is the world's second largest producer, covering 5.74 million hectares. Managed by "
    "MPOB (Malaysian Palm Oil Board), following RSPO and MSPO sustainability standards. Key research focuses on "
    "high-yielding varieties, precision agriculture, and sustainable practices. Industry challenges include labor "
    "shortage, replanting costs, and environmental concerns.",
    0.7, 0.75, 'MPOB Industry Overview', 1.0, 0.7)


def calculate_malaysian_context_score(content: str) -> float:
    content_lower = content.lower()
    score = 0
    max_score = 0
    for terms, weight in MALAYSIAN_TERM_WEIGHTS:
        for term in terms:
            max_score += weight
            if term.lower() in content_lower:
                score += weight
    return min(score / max_score, 1.0) if max_score else 0.0


def calculate_scientific_rigor_score(content: str) -> float:
    content_lower = content.lower()
    score = 0.0
    score += 0.15 * sum(1 for term in PEER_REVIEW_TERMS if term in content_lower)
    score += 0.1 * sum(1 for term in STATISTICAL_TERMS if term in content_lower)
    score += 0.1 * sum(1 for pattern in QUANTITATIVE_PATTERNS if pattern.search(content))
    score += 0.15 * sum(1 for pattern in CITATION_PATTERNS if pattern.search(content))
    score += 0.1 * sum(1 for term in METHODOLOGY_TERMS if term in content_lower)
    return min(score, 1.0)


def calculate_confidence_score(relevance: float, malaysian_context: float, scientific_rigor: float) -> float:
    return min(relevance * 0.5 + malaysian_context * 0.3 + scientific_rigor * 0.2, 1.0)


def score_content(content: str, relevance: float, source: str) -> RAGContext:
    malaysian = calculate_malaysian_context_score(content)
    rigor = calculate_scientific_rigor_score(content)
    return RAGContext(
        content=content,
        relevance=relevance,
        confidence=calculate_confidence_score(relevance, malaysian, rigor),
        source=source,
        malaysian_context_score=malaysian,
        scientific_rigor=rigor,
    )


def get_malaysian_oil_palm_context(query: str, limit: int) -> List[RAGContext]:
    """Curated contexts selected by keywords in the query"""
    query_lower = query.lower()
    contexts = [context for triggers, context in CURATED_MALAYSIAN_CONTEXTS
                if any(t in query_lower for t in triggers)]
    if not contexts:
        contexts = [GENERAL_MALAYSIAN_CONTEXT]
    return contexts[:limit]


class EnhancedRAGService:
    """Retrieval with Malaysian context scoring on top of the knowledge base"""

    def __init__(self, reference_manager=None, embeddings=None):
        self.logger = logging.getLogger(f"{__name__}.EnhancedRAGService")
        if reference_manager is None:
            from utils.reference_manager import get_reference_manager
            reference_manager = get_reference_manager()
        self.reference_manager = reference_manager
        self._embeddings = embeddings

    @property
    def embeddings(self):
        return self._embeddings if self._embeddings is not None else self.reference_manager.embeddings

    def query_with_malaysian_context(self, query: str, limit: int = 5,
                                     min_relevance_score: Optional[float] = None) -> List[RAGContext]:
        if min_relevance_score is None:
            min_relevance_score = get_rag_config().min_relevance_score

        embeddings = self.embeddings
        if embeddings is None:
            self.logger.warning("Embeddings not configured, using fallback search")
            return self.fallback_text_search(query, limit)

        try:
            query_vector = embeddings.embed_query(query)
            documents = self.reference_manager.vector_store.search(
                query_vector, top_k=limit * 2, min_similarity=min_relevance_score)
        except Exception as e:
            self.logger.error(f"RAG query error: {e}")
            return self.fallback_text_search(query, limit)

        if not documents:
            return []

        contexts = []
        for doc in documents:
            relevance = doc.get('similarity') or DEFAULT_RELEVANCE
            source = doc.get('source') or (doc.get('metadata') or {}).get('filename') or 'Unknown'
            contexts.append(score_content(doc.get('content', ''), relevance, source))

        contexts.sort(key=lambda c: c.confidence + c.malaysian_context_score * 0.3, reverse=True)
        return contexts[:limit]

    def fallback_text_search(self, query: str, limit: int) -> List[RAGContext]:
        """Keyword search over stored chunks, then curated Malaysian context"""
        terms = [t for t in re.findall(r'\w+', query.lower()) if len(t) >= 3]
        try:
            matches = []
            if terms:
                for chunk in self.reference_manager.vector_store.all():
                    content = chunk.get('content', '')
                    if all(term in content.lower() for term in terms):
                        source = (chunk.get('metadata') or {}).get('source') or 'Document'
                        matches.append(score_content(content, TEXT_SEARCH_RELEVANCE, source))
                        if len(matches) >= limit:
                            break
            if matches:
                return matches
        except Exception as e:
            self.logger.error(f"Fallback search error: {e}")
        return get_malaysian_oil_palm_context(query, limit)

    def query(self, query: str, limit: int = 5) -> List[Dict[str, Any]]:
        """Simple query returning content, score and source"""
        return [
            {'content': ctx.content, 'score': ctx.relevance, 'source': ctx.source}
            for ctx in self.query_with_malaysian_context(query, limit)
        ]
