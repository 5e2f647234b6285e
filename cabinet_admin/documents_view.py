"""
Documents view for the cabinet admin app.
Upload, browse, preview, edit and delete documents.
"""

import asyncio
import streamlit as st
import pandas as pd
from typing import Any, Dict, List, Optional
import logging

import httpx

from .document_service import DOCUMENT_CATEGORIES, Document
from .error_handler import ErrorHandler
from .form_exceptions import FormEngineError
from .pdf_viewer import PDFViewer, format_file_size
from .services import AppServices

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "All"
DOCUMENT_ERRORS = (FormEngineError, httpx.HTTPError, OSError)


def parse_tags(text: str) -> List[str]:
    """Comma separated tags, trimmed, without blanks or duplicates."""
    tags: List[str] = []
    for part in (text or "").split(","):
        tag = part.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def build_document_updates(description: str, tags: str, uploaded_by: str) -> Dict[str, Any]:
    """Editable document columns from the edit form inputs."""
    return {
        'description': description.strip() or None,
        'tags': parse_tags(tags),
        'uploaded_by': uploaded_by.strip() or None,
    }


def documents_to_dataframe(documents: List[Document]) -> pd.DataFrame:
    """Listing table for documents, newest first as given."""
    rows = [
        {
            'File': doc.original_filename,
            'Category': doc.category,
            'Size': format_file_size(doc.file_size),
            'Type': doc.file_type,
            'Tags': ", ".join(doc.tags),
            'Uploaded': doc.uploaded_at,
            'Uploaded By': doc.uploaded_by or "",
        }
        for doc in documents
    ]
    return pd.DataFrame(rows, columns=['File', 'Category', 'Size', 'Type', 'Tags', 'Uploaded', 'Uploaded By'])


class DocumentsView:
    """Renders the documents page."""

    @staticmethod
    def render(services: AppServices):
        st.subheader("📁 Documents")

        DocumentsView._render_upload(services)
        st.divider()

        col_category, col_search = st.columns([1, 2])
        with col_category:
            category = st.selectbox("Category", [ALL_CATEGORIES] + DOCUMENT_CATEGORIES, key="documents_category")
        with col_search:
            query = st.text_input("Search", key="documents_search", placeholder="File name, description or tag")

        try:
            if query.strip():
                documents = asyncio.run(services.documents.search_documents(query))
                if category != ALL_CATEGORIES:
                    documents = [doc for doc in documents if doc.category == category]
            else:
                documents = asyncio.run(services.documents.list_documents(
                    None if category == ALL_CATEGORIES else category
                ))
        except DOCUMENT_ERRORS as e:
            ErrorHandler.handle_error(e, "loading documents")
            return

        if not documents:
            st.info("No documents found")
            return

        st.dataframe(documents_to_dataframe(documents), use_container_width=True, hide_index=True)
        DocumentsView._render_selected(services, documents)

    @staticmethod
    def _render_upload(services: AppServices):
        with st.expander("⬆️ Upload document"):
            upload = st.file_uploader("File", key="document_upload")
            category = st.selectbox("Category", DOCUMENT_CATEGORIES, key="document_upload_category")
            description = st.text_area("Description", key="document_upload_description")
            tags = st.text_input("Tags", key="document_upload_tags", help="Comma separated")
            uploaded_by = st.text_input("Uploaded by", key="document_upload_user")

            if st.button("Upload", key="document_upload_submit", disabled=upload is None):
                try:
                    document = asyncio.run(services.documents.upload_document(
                        upload, category,
                        description=description or None,
                        tags=parse_tags(tags),
                        uploaded_by=uploaded_by or None
                    ))
                except DOCUMENT_ERRORS as e:
                    ErrorHandler.handle_error(e, "uploading document")
                    return
                st.success(f"Uploaded {document.original_filename}")

    @staticmethod
    def _render_selected(services: AppServices, documents: List[Document]):
        by_id = {doc.id: doc for doc in documents}
        document_id = st.selectbox(
            "Preview", list(by_id),
            format_func=lambda did: f"{by_id[did].original_filename} ({by_id[did].category})",
            key="documents_preview"
        )
        document: Optional[Document] = by_id.get(document_id)
        if document is None:
            return

        content = None
        try:
            content = asyncio.run(services.documents.download_document(document.id))
        except DOCUMENT_ERRORS as e:
            ErrorHandler.handle_error(e, f"downloading {document.original_filename}")

        PDFViewer.render_document_preview(document, content)

        DocumentsView._render_edit(services, document)

        if st.button("🗑️ Delete document", key=f"delete_document_{document.id}"):
            try:
                asyncio.run(services.documents.delete_document(document.id))
            except DOCUMENT_ERRORS as e:
                ErrorHandler.handle_error(e, f"deleting {document.original_filename}")
                return
            logger.info(f"Deleted document {document.id} from the documents page")
            st.rerun()

    @staticmethod
    def _render_edit(services: AppServices, document: Document):
        with st.expander("✏️ Edit details"):
            description = st.text_area(
                "Description", value=document.description or "", key=f"document_description_{document.id}"
            )
            tags = st.text_input(
                "Tags", value=", ".join(document.tags), key=f"document_tags_{document.id}", help="Comma separated"
            )
            uploaded_by = st.text_input(
                "Uploaded by", value=document.uploaded_by or "", key=f"document_user_{document.id}"
            )

            if st.button("💾 Save details", key=f"save_document_{document.id}"):
                updates = build_document_updates(description, tags, uploaded_by)
                try:
                    asyncio.run(services.documents.update_document(document.id, updates))
                except DOCUMENT_ERRORS as e:
                    ErrorHandler.handle_error(e, f"updating {document.original_filename}")
                    return
                logger.info(f"Updated details of document {document.id}")
                st.rerun()
