"""
Document preview component for the cabinet admin app.
PDFs are shown with streamlit-pdf-viewer, images inline, anything else as a download.
"""

import streamlit as st
from typing import Optional
import logging

from streamlit_pdf_viewer import pdf_viewer

from .document_service import Document

logger = logging.getLogger(__name__)

PREVIEW_WIDTH = 700
PREVIEW_HEIGHT = 600


def format_file_size(size: int) -> str:
    """Human readable size, e.g. '1.5 MB'."""
    value = float(size)
    for unit in ("bytes", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} {unit}" if unit == "bytes" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def get_preview_kind(document: Document) -> str:
    """One of 'pdf', 'image' or 'download'."""
    if document.is_pdf:
        return "pdf"
    if document.file_type.startswith("image/"):
        return "image"
    return "download"


class PDFViewer:
    """Renders document previews."""

    @staticmethod
    def render_document_preview(document: Optional[Document], content: Optional[bytes]):
        """
        Render a preview of a stored document.

        Args:
            document: Document metadata
            content: File bytes, or None if the download failed
        """
        st.subheader("📄 Document Preview")

        if document is None:
            st.info("No document selected")
            return

        if content is None:
            logger.warning(f"No content for document {document.id}")
            st.warning(f"⚠️ File for {document.original_filename} is not available")
            PDFViewer._display_document_info(document)
            return

        kind = get_preview_kind(document)
        if kind == "pdf":
            pdf_viewer(content, width=PREVIEW_WIDTH, height=PREVIEW_HEIGHT)
        elif kind == "image":
            st.image(content, caption=document.original_filename)
        else:
            st.info("Preview is not available for this file type")

        st.download_button(
            "⬇️ Download",
            data=content,
            file_name=document.original_filename,
            mime=document.file_type,
            key=f"download_{document.id}"
        )
        PDFViewer._display_document_info(document)

    @staticmethod
    def _display_document_info(document: Document):
        with st.expander("📋 Document Information"):
            st.write(f"**File:** {document.original_filename}")
            st.write(f"**Size:** {format_file_size(document.file_size)}")
            st.write(f"**Type:** {document.file_type}")
            st.write(f"**Category:** {document.category}")
            if document.description:
                st.write(f"**Description:** {document.description}")
            if document.tags:
                st.write(f"**Tags:** {', '.join(document.tags)}")
            st.write(f"**Uploaded:** {document.uploaded_at}")
            if document.url:
                st.markdown(f"[Open file]({document.url})")
