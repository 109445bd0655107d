import logging
from typing import Any, Dict, List

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from modules.results import format_timestamp
from utils.document_processor import DocumentProcessingError, supported_extensions
from utils.rag_service import EnhancedRAGService
from utils.reference_manager import get_reference_manager
from utils.validation import DocumentUploadInput, RequestValidationError, validate_request

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DOCUMENT_CATEGORIES = ['research', 'guide', 'regulation', 'case_study', 'best_practice']


def build_documents_table(documents: List[Dict[str, Any]]) -> pd.DataFrame:
    rows = []
    for doc in documents:
        metadata = doc.get('metadata') or {}
        rows.append({
            'Title': doc.get('title') or metadata.get('filename'),
            'Type': doc.get('document_type') or '-',
            'Category': metadata.get('category') or '-',
            'Chunks': metadata.get('chunk_count', 0),
            'Active': bool(doc.get('is_active')),
            'Added': format_timestamp(doc.get('created_at')),
        })
    return pd.DataFrame(rows, columns=['Title', 'Type', 'Category', 'Chunks', 'Active', 'Added'])


def create_document_types_chart(document_types: Dict[str, int]) -> go.Figure:
    fig = go.Figure(go.Bar(
        x=list(document_types.keys()),
        y=list(document_types.values()),
        marker_color='#27ae60',
        text=list(document_types.values()),
        textposition='auto'
    ))
    fig.update_layout(
        title="Documents by Type",
        xaxis_title="Type",
        yaxis_title="Documents",
        template="plotly_white",
        height=400
    )
    return fig


def show_documents_page():
    """Reference knowledge base management"""
    st.title("📚 Reference Documents")
    st.caption("Documents added here are chunked, embedded and used as context for every analysis.")

    manager = get_reference_manager()

    overview_tab, upload_tab, library_tab, query_tab = st.tabs(
        ["📊 Overview", "📤 Upload", "🗂️ Library", "🔎 Test Retrieval"])
    with overview_tab:
        display_overview(manager)
    with upload_tab:
        display_upload(manager)
    with library_tab:
        display_library(manager)
    with query_tab:
        display_query_tester(manager)


def display_overview(manager):
    stats = manager.get_stats()
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Documents", stats['document_count'])
    with col2:
        st.metric("Active", stats['active_document_count'])
    with col3:
        st.metric("Chunks", stats['embedding_count'])
    with col4:
        st.metric("Tokens", f"{stats['total_tokens']:,}")

    analytics = manager.get_analytics_data()
    if analytics['document_types']:
        st.plotly_chart(create_document_types_chart(analytics['document_types']), use_container_width=True)
        st.caption(f"Average chunks per document: {analytics['average_chunks_per_document']}")
    else:
        st.info("📋 The knowledge base is empty. Upload documents to get started.")


def display_upload(manager):
    uploaded_files = st.file_uploader("Upload reference documents", type=supported_extensions(),
                                      accept_multiple_files=True)
    category = st.selectbox("Category", DOCUMENT_CATEGORIES,
                            format_func=lambda c: c.replace('_', ' ').title())

    if uploaded_files and st.button("📥 Add to Knowledge Base", type="primary", use_container_width=True):
        for uploaded_file in uploaded_files:
            content = uploaded_file.getvalue()
            try:
                validate_request(DocumentUploadInput, {
                    'filename': uploaded_file.name,
                    'file_size': len(content),
                    'mime_type': uploaded_file.type or 'application/octet-stream',
                    'category': category,
                })
                with st.spinner(f"Processing {uploaded_file.name}..."):
                    document_id = manager.process_document(content, uploaded_file.name)
                st.success(f"✅ {uploaded_file.name} added ({document_id})")
            except (RequestValidationError, DocumentProcessingError) as e:
                st.error(f"❌ {uploaded_file.name}: {e}")
            except Exception as e:
                logger.error(f"Error processing {uploaded_file.name}: {e}")
                st.error(f"❌ {uploaded_file.name} could not be processed")

    st.markdown("---")
    st.markdown("**Rebuild from the reference documents folder**")
    st.caption(f"Folder: {manager.rag_config.documents_path}")
    if st.button("🔄 Rebuild Embeddings", use_container_width=True):
        with st.spinner("Rebuilding the knowledge base..."):
            try:
                ids = manager.rebuild_embeddings()
                st.success(f"✅ Rebuilt with {len(ids)} documents")
            except Exception as e:
                logger.error(f"Rebuild failed: {e}")
                st.error(f"❌ Rebuild failed: {e}")


def display_library(manager):
    try:
        documents = manager.list_documents()
    except Exception as e:
        logger.error(f"Error listing documents: {e}")
        st.error("❌ Could not load documents")
        return

    if not documents:
        st.info("📋 No documents in the knowledge base yet.")
        return

    st.dataframe(build_documents_table(documents), use_container_width=True, hide_index=True)

    titles = {doc['id']: doc.get('title') or doc['id'] for doc in documents}
    selected = st.selectbox("Document", list(titles.keys()), format_func=titles.get)
    if st.button("🗑️ Remove Document", use_container_width=True):
        try:
            manager.remove_document(selected)
            st.success(f"✅ Removed {titles[selected]}")
            st.rerun()
        except Exception as e:
            logger.error(f"Error removing document {selected}: {e}")
            st.error("❌ Could not remove document")


def display_query_tester(manager):
    query = st.text_input("Query", placeholder="e.g. lime requirement for acidic peat soil")
    limit = st.slider("Results", 1, 10, 5)
    if not query or not st.button("🔎 Search Knowledge Base"):
        return

    service = EnhancedRAGService(reference_manager=manager)
    with st.spinner("Searching..."):
        contexts = service.query_with_malaysian_context(query, limit)

    if not contexts:
        st.info("No matching content above the relevance threshold.")
        return

    for ctx in contexts:
        with st.expander(f"{ctx.source} (confidence {ctx.confidence:.2f})"):
            st.write(ctx.content)
            col1, col2, col3 = st.columns(3)
            with col1:
                st.metric("Relevance", f"{ctx.relevance:.2f}")
            with col2:
                st.metric("Malaysian Context", f"{ctx.malaysian_context_score:.2f}")
            with col3:
                st.metric("Scientific Rigor", f"{ctx.scientific_rigor:.2f}")
