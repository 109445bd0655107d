"""
Reference Document Manager
Maintains the knowledge base: reference documents, their text chunks and
chunk embeddings, and similarity search over them.
"""

import hashlib
import logging
import math
import os
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import numpy as np
from langchain_text_splitters import RecursiveCharacterTextSplitter

from utils.config_manager import get_rag_config
from utils.document_processor import DocumentProcessingError, DocumentProcessor
from utils.firebase_config import COLLECTIONS, FieldFilter, get_firestore_client
from utils.vector_store import FirestoreVectorStore, InMemoryVectorStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ('.pdf', '.txt', '.md', '.doc', '.docx')

CONTENT_TYPES = {
    '.pdf': 'application/pdf',
    '.txt': 'text/plain',
    '.md': 'text/markdown',
    '.doc': 'application/msword',
    '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
}

SOURCE_DIRECTORIES = {
    'research_papers': 'Research Paper',
    'best_practices': 'Best Practice Guide',
    'disease_guides': 'Disease Guide',
    'case_studies': 'Case Study',
}

BASE_KEYWORDS = ['oil_palm', 'malaysia', 'plantation', 'agriculture']

CATEGORY_KEYWORDS = {
    'soil_analysis': ['soil_fertility', 'pH', 'nutrient_analysis', 'soil_preparation', 'organic_matter'],
    'leaf_analysis': ['foliar_nutrition', 'frond_analysis', 'nutrient_deficiency', 'leaf_symptoms'],
    'fertilizer_management': ['NPK', 'fertilizer_application', 'nutrient_management', 'yield_optimization'],
    'disease_management': ['pest_control', 'disease_prevention', 'integrated_pest_management'],
    'research_paper': ['research_findings', 'field_trials', 'experimental_results'],
}

CONTENT_KEYWORDS = ['tenera', 'dura', 'pisifera', 'mpob', 'rspo', 'sustainable',
                    'yield', 'productivity', 'ffb', 'palm_oil', 'cultivation']

SIGNED_URL_LIFETIME = timedelta(hours=1)


def sha256_hex(data) -> str:
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def extract_title(file_name: str) -> str:
    stem = os.path.splitext(os.path.basename(file_name))[0]
    return stem.replace('_', ' ').replace('-', ' ')


def extract_source(file_path: str) -> str:
    parts = os.path.normpath(file_path).split(os.sep)
    for directory, source in SOURCE_DIRECTORIES.items():
        if directory in parts:
            return source
    return 'Reference Document'


def extract_document_type(file_path: str) -> str:
    name = os.path.basename(file_path).lower()
    if 'fertilizer' in name or 'nutrient' in name:
        return 'fertilizer_guide'
    if 'disease' in name or 'pest' in name:
        return 'disease_guide'
    if 'cultivation' in name or 'planting' in name:
        return 'cultivation_guide'
    if 'research' in name or 'study' in name:
        return 'research_paper'
    return 'general_reference'


def get_content_type(file_name: str) -> str:
    return CONTENT_TYPES.get(os.path.splitext(file_name)[1].lower(), 'application/octet-stream')


def estimate_token_count(text: str) -> int:
    """Rough estimate: one token per four characters of English text"""
    return math.ceil(len(text) / 4)


def generate_document_code(name: str) -> str:
    """Four character base-36 code from a 32-bit rolling string hash"""
    value = 0
    for ch in name:
        value = ((value << 5) - value + ord(ch)) & 0xFFFFFFFF
    if value >= 2 ** 31:
        value -= 2 ** 32
    return np.base_repr(abs(value), 36)[:4].upper()


def generate_standardized_name(original_name: str) -> str:
    clean_name = re.sub(r'\s+', '_', original_name.lower())
    clean_name = re.sub(r'[^a-z0-9._-]', '', clean_name)
    code = generate_document_code(clean_name)
    if 'soil' in clean_name:
        prefix = 'soil'
    elif 'leaf' in clean_name or 'foliar' in clean_name:
        prefix = 'leaf'
    elif 'fertilizer' in clean_name or 'nutrient' in clean_name:
        prefix = 'fertilizer'
    elif 'disease' in clean_name or 'pest' in clean_name:
        prefix = 'disease'
    elif 'best_practice' in clean_name or 'guide' in clean_name:
        prefix = 'guide'
    else:
        prefix = 'research'
    return f"{prefix}_{code}.pdf"


def categorize_document(file_name: str) -> str:
    name = file_name.lower()
    if 'soil' in name or 'mineral' in name:
        return 'soil_analysis'
    if 'leaf' in name or 'foliar' in name:
        return 'leaf_analysis'
    if 'fertilizer' in name or 'nutrient' in name:
        return 'fertilizer_management'
    if 'disease' in name or 'pest' in name:
        return 'disease_management'
    if 'best_practice' in name or 'guide' in name:
        return 'best_practices'
    if 'research' in name or 'study' in name:
        return 'research_papers'
    return 'general'


def extract_content_type(file_name: str) -> str:
    name = file_name.lower()
    if 'research' in name or 'study' in name or 'paper' in name:
        return 'research_paper'
    if 'guide' in name or 'manual' in name:
        return 'technical_guide'
    if 'best_practice' in name or 'practices' in name:
        return 'best_practices'
    if 'case_study' in name or 'case' in name:
        return 'case_study'
    return 'reference_document'


def calculate_processing_priority(file_name: str) -> int:
    name = file_name.lower()
    priority = 5
    if 'soil' in name or 'leaf' in name:
        priority += 3
    if 'malaysia' in name or 'mpob' in name:
        priority += 2
    if any(year in name for year in ('2023', '2024', '2025')):
        priority += 1
    return min(priority, 10)


def extract_document_keywords(content: str, category: str) -> List[str]:
    keywords = BASE_KEYWORDS + CATEGORY_KEYWORDS.get(category, [])
    keywords += [k for k in CONTENT_KEYWORDS if k in content]
    return list(dict.fromkeys(keywords))


def standardize_document_metadata(file_name: str, content: str) -> Dict[str, Any]:
    """Category, type, keywords and region inferred from the name and first 2 KB of text"""
    lower_name = file_name.lower()
    lower_content = content.lower()[:2000]

    category, document_type, prefix = 'general', 'reference', None
    if 'soil' in lower_name or 'soil analysis' in lower_content:
        category, document_type, prefix = 'soil_analysis', 'analytical_guide', 'soil'
    elif 'leaf' in lower_name or 'foliar' in lower_content or 'frond' in lower_content:
        category, document_type, prefix = 'leaf_analysis', 'analytical_guide', 'leaf'
    elif 'fertilizer' in lower_name or 'nutrient management' in lower_content:
        category, document_type, prefix = 'fertilizer_management', 'management_guide', 'fertilizer'
    elif 'disease' in lower_name or 'pest' in lower_content:
        category, document_type, prefix = 'disease_management', 'diagnostic_guide', 'disease'
    elif 'research' in lower_name or 'journal' in lower_content:
        category, document_type, prefix = 'research_paper', 'scientific_paper', 'research'

    standardized_name = file_name
    if prefix:
        standardized_name = f"{prefix}_{generate_document_code(lower_name)}.pdf"

    region = 'malaysia'
    if 'sabah' in lower_content or 'sarawak' in lower_content:
        region = 'east_malaysia'
    elif 'peninsular' in lower_content or 'west malaysia' in lower_content:
        region = 'peninsular_malaysia'

    return {
        'standardized_name': standardized_name,
        'category': category,
        'document_type': document_type,
        'keywords': extract_document_keywords(lower_content, category),
        'region': region,
    }


class ReferenceDocumentManager:
    """Knowledge base of reference documents with chunk embeddings"""

    def __init__(self, db=None, embeddings=None, vector_store=None, storage_bucket=None):
        self.logger = logging.getLogger(f"{__name__}.ReferenceDocumentManager")
        self.rag_config = get_rag_config()
        self.db = db if db is not None else get_firestore_client()
        self._embeddings = embeddings
        self._storage_bucket = storage_bucket
        if vector_store is not None:
            self.vector_store = vector_store
        elif self.db is not None and self.rag_config.use_firestore_vectors:
            self.vector_store = FirestoreVectorStore(self.db)
        else:
            self.vector_store = InMemoryVectorStore()
        self.text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.rag_config.chunk_size,
            chunk_overlap=self.rag_config.chunk_overlap,
            separators=["\n\n", "\n", ". ", " ", ""],
        )
        self.processor = DocumentProcessor(llm=None)

    @property
    def embeddings(self):
        if self._embeddings is None:
            from utils.llm_client import get_embeddings
            self._embeddings = get_embeddings()
        return self._embeddings

    @property
    def documents(self):
        if self.db is None:
            raise RuntimeError("Firestore is not available")
        return self.db.collection(COLLECTIONS['reference_documents'])

    def _find_by_hash(self, content_hash: str) -> Optional[str]:
        docs = self.documents.where(filter=FieldFilter('content_hash', '==', content_hash)).limit(1).stream()
        for doc in docs:
            return doc.id
        return None

    def process_document(self, content: bytes, file_name: str, file_path: Optional[str] = None) -> str:
        """Extract, chunk, embed and store a reference document

        Args:
            content: Raw file bytes
            file_name: Original file name, used for title and type inference
            file_path: Where the file came from; directory names decide the source label

        Returns:
            The reference document id (the existing id when the content is already stored)

        Raises:
            DocumentProcessingError: when no text or no chunks can be extracted
        """
        file_path = file_path or file_name
        content_hash = sha256_hex(content)

        existing_id = self._find_by_hash(content_hash)
        if existing_id:
            self.logger.info(f"Document {file_name} already exists in database")
            return existing_id

        text, _ = self.processor.extract_text(content, file_name)
        chunks = self.text_splitter.split_text(text or '')
        if not chunks:
            raise DocumentProcessingError(f"No content extracted from {file_name}")

        embeddings = self.embeddings
        if embeddings is None:
            raise RuntimeError("Embeddings service is not available")

        indexed_chunks = [(i, chunk.strip()) for i, chunk in enumerate(chunks) if chunk.strip()]
        self.logger.info(f"Generating embeddings for {len(indexed_chunks)} chunks...")
        vectors = embeddings.embed_documents([chunk for _, chunk in indexed_chunks])

        standardized = standardize_document_metadata(file_name, text)
        now = datetime.now(timezone.utc)
        doc_ref = self.documents.document()
        doc_ref.set({
            'title': extract_title(file_name),
            'description': f"Reference document: {file_name}",
            'source': extract_source(file_path),
            'document_type': extract_document_type(file_path),
            'file_path': file_path,
            'content_hash': content_hash,
            'metadata': {
                'filename': file_name,
                'file_size': len(content),
                'chunk_count': len(chunks),
                'content_type': get_content_type(file_name),
                'processing_priority': calculate_processing_priority(file_name),
                **standardized,
            },
            'language': 'en',
            'is_active': True,
            'created_at': now,
            'processed_at': now,
        })

        try:
            self.vector_store.add([
                {
                    'document_id': doc_ref.id,
                    'chunk_index': index,
                    'content': chunk,
                    'content_hash': sha256_hex(chunk),
                    'embedding': vector,
                    'metadata': {'filename': file_name, 'total_chunks': len(chunks)},
                    'token_count': estimate_token_count(chunk),
                    'created_at': now,
                }
                for (index, chunk), vector in zip(indexed_chunks, vectors)
            ])
        except Exception:
            self.logger.error(f"Storing chunks for {file_name} failed, removing document record")
            self.vector_store.delete_where(doc_ref.id)
            doc_ref.delete()
            raise

        self.logger.info(f"Successfully processed {file_name} with {len(chunks)} chunks")
        return doc_ref.id

    def add_document(self, file_path: str) -> str:
        self.logger.info(f"Adding new document: {os.path.basename(file_path)}")
        with open(file_path, 'rb') as f:
            content = f.read()
        return self.process_document(content, os.path.basename(file_path), file_path)

    def get_document_files(self, documents_dir: str) -> List[str]:
        files = []
        for root, _, names in os.walk(documents_dir):
            for name in sorted(names):
                if os.path.splitext(name)[1].lower() in SUPPORTED_EXTENSIONS:
                    files.append(os.path.join(root, name))
        return sorted(files)

    def load_all_documents(self, documents_dir: Optional[str] = None) -> List[str]:
        """Process every supported file below a directory; failures are logged and skipped"""
        documents_dir = documents_dir or self.rag_config.documents_path
        if not os.path.isdir(documents_dir):
            self.logger.warning(f"Reference documents directory not found: {documents_dir}")
            return []

        ids = []
        for file_path in self.get_document_files(documents_dir):
            try:
                ids.append(self.add_document(file_path))
            except (DocumentProcessingError, OSError, RuntimeError) as e:
                self.logger.error(f"Failed to process {file_path}: {e}")
        return ids

    def _document_info(self, document_id: str, cache: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        if document_id not in cache:
            snapshot = self.documents.document(document_id).get()
            cache[document_id] = (snapshot.to_dict() or {}) if snapshot.exists else {}
        return cache[document_id]

    def search_relevant_documents(self, query: str, top_k: int = 5,
                                  min_similarity: Optional[float] = None) -> List[Dict[str, Any]]:
        """Chunks most similar to the query, joined with their document title and source"""
        if min_similarity is None:
            min_similarity = self.rag_config.min_similarity
        try:
            embeddings = self.embeddings
            if embeddings is None:
                return []
            query_vector = embeddings.embed_query(query)
            results = self.vector_store.search(query_vector, top_k=top_k, min_similarity=min_similarity)

            documents: Dict[str, Dict[str, Any]] = {}
            transformed = []
            for result in results:
                info = self._document_info(result.get('document_id'), documents) if self.db is not None else {}
                transformed.append({
                    'content': result.get('content', ''),
                    'metadata': result.get('metadata') or {},
                    'similarity': result['similarity'],
                    'document_id': result.get('document_id'),
                    'document_title': info.get('title'),
                    'document_source': info.get('source'),
                    'chunk_index': result.get('chunk_index', 0),
                })
            if not transformed:
                self.logger.info("No relevant documents found")
            return transformed
        except Exception as e:
            self.logger.error(f"Error searching relevant documents: {e}")
            return []

    def get_context_for_query(self, query: str, top_k: int = 3) -> str:
        """Formatted reference blocks for inclusion in a prompt"""
        docs = self.search_relevant_documents(query, top_k)
        blocks = []
        for index, doc in enumerate(docs, start=1):
            source = doc.get('document_source') or doc.get('document_title') or 'Unknown'
            blocks.append(f"[Reference {index} from {source} ({doc['similarity'] * 100:.1f}% relevant)]:\n{doc['content']}")
        return '\n\n'.join(blocks)

    def get_document_url(self, storage_path: str) -> Optional[str]:
        bucket = self._storage_bucket
        if bucket is None:
            from utils.firebase_config import get_storage_bucket
            bucket = get_storage_bucket()
        if bucket is None:
            return None
        try:
            return bucket.blob(storage_path).generate_signed_url(expiration=SIGNED_URL_LIFETIME)
        except Exception as e:
            self.logger.error(f"Error getting document URL for {storage_path}: {e}")
            return None

    def get_enhanced_rag_context(self, query: str, top_k: int = 5) -> List[Dict[str, Any]]:
        """Search results with document metadata and a download URL where one exists"""
        try:
            results = self.search_relevant_documents(query, top_k)
            documents: Dict[str, Dict[str, Any]] = {}
            enhanced = []
            for result in results:
                info = self._document_info(result['document_id'], documents) if self.db is not None else {}
                metadata = info.get('metadata') or {}
                item = dict(result)
                item['document_metadata'] = metadata
                if metadata.get('storage_path'):
                    item['document_url'] = self.get_document_url(metadata['storage_path'])
                enhanced.append(item)
            return enhanced
        except Exception as e:
            self.logger.error(f"Error getting enhanced RAG context: {e}")
            return []

    def remove_document(self, document_id: str) -> None:
        """Delete a document's chunks, then the document itself"""
        removed = self.vector_store.delete_where(document_id)
        self.documents.document(document_id).delete()
        self.logger.info(f"Removed document {document_id} and {removed} chunks")

    def list_documents(self, active_only: bool = False) -> List[Dict[str, Any]]:
        query = self.documents
        if active_only:
            query = query.where(filter=FieldFilter('is_active', '==', True))
        docs = []
        for doc in query.stream():
            data = doc.to_dict() or {}
            data['id'] = doc.id
            docs.append(data)
        docs.sort(key=lambda d: d.get('created_at') or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return docs

    def get_stats(self) -> Dict[str, int]:
        try:
            documents = self.list_documents()
            chunks = self.vector_store.all()
            return {
                'document_count': len(documents),
                'embedding_count': len(chunks),
                'active_document_count': sum(1 for d in documents if d.get('is_active')),
                'total_tokens': sum(c.get('token_count') or 0 for c in chunks),
            }
        except Exception as e:
            self.logger.error(f"Error getting stats: {e}")
            return {'document_count': 0, 'embedding_count': 0, 'active_document_count': 0, 'total_tokens': 0}

    def get_analytics_data(self) -> Dict[str, Any]:
        try:
            active = self.list_documents(active_only=True)
            total_embeddings = self.vector_store.count()
            document_types: Dict[str, int] = {}
            for doc in active:
                doc_type = doc.get('document_type') or 'general'
                document_types[doc_type] = document_types.get(doc_type, 0) + 1
            return {
                'total_documents': len(active),
                'total_embeddings': total_embeddings,
                'average_chunks_per_document': round(total_embeddings / len(active)) if active else 0,
                'document_types': document_types,
                'recently_added': active[:5],
            }
        except Exception as e:
            self.logger.error(f"Error getting analytics data: {e}")
            return {
                'total_documents': 0,
                'total_embeddings': 0,
                'average_chunks_per_document': 0,
                'document_types': {},
                'recently_added': [],
            }

    def rebuild_embeddings(self, documents_dir: Optional[str] = None) -> List[str]:
        """Delete every chunk and document, then reload from the documents directory"""
        self.logger.info("Rebuilding embeddings system...")
        self.vector_store.clear()
        for doc in self.documents.stream():
            doc.reference.delete()
        ids = self.load_all_documents(documents_dir)
        self.logger.info(f"Embeddings system rebuilt with {len(ids)} documents")
        return ids


_reference_manager = None


def get_reference_manager() -> ReferenceDocumentManager:
    """Process-wide reference manager"""
    global _reference_manager
    if _reference_manager is None:
        _reference_manager = ReferenceDocumentManager()
    return _reference_manager
