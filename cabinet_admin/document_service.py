"""
Document management.
Document files live in the blob store under <category>/<uuid>.<ext>; their
metadata lives in the documents table of the CRUD store.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .blob_store import BlobStore, FileUpload
from .crud_store import CrudStore
from .form_exceptions import StoreError

logger = logging.getLogger(__name__)

DOCUMENTS_TABLE = "documents"

DOCUMENT_CATEGORIES = ["manual", "specification", "invoice", "drawing", "other"]

# Columns fixed at upload time; category is part of the blob path
IMMUTABLE_COLUMNS = {"id", "filename", "original_filename", "file_size", "file_type", "category", "uploaded_at"}


class Document(BaseModel):
    """Metadata of a stored document."""

    id: str
    filename: str
    original_filename: str
    file_size: int = 0
    file_type: str = "application/octet-stream"
    category: str
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    uploaded_by: Optional[str] = None
    uploaded_at: str
    last_modified_at: str
    url: Optional[str] = None

    @property
    def path(self) -> str:
        return f"{self.category}/{self.filename}"

    @property
    def is_pdf(self) -> bool:
        return self.file_type == "application/pdf" or self.filename.lower().endswith(".pdf")

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"url"})


class DocumentService:
    """Upload, list, update and delete documents."""

    def __init__(self, store: CrudStore, blob_store: BlobStore, table: str = DOCUMENTS_TABLE):
        self.store = store
        self.blob_store = blob_store
        self.table = table

    def _with_url(self, record: Dict[str, Any]) -> Document:
        document = Document.model_validate(record)
        document.url = self.blob_store.get_public_url(document.path)
        return document

    async def upload_document(self, upload: Any, category: str, description: Optional[str] = None,
                              tags: Optional[List[str]] = None,
                              uploaded_by: Optional[str] = None) -> Document:
        """
        Store a document file and its metadata.

        Args:
            upload: FileUpload or Streamlit UploadedFile
            category: Document category, also the blob folder
            description: Optional free text
            tags: Optional tags
            uploaded_by: Optional uploader name

        Returns:
            The stored Document with its public URL

        Raises:
            StoreError: If the upload or the metadata insert fails; the blob is
                removed again when only the metadata insert fails
        """
        file = FileUpload.from_uploaded(upload)
        filename = f"{uuid.uuid4()}.{file.extension}" if file.extension else str(uuid.uuid4())
        path = f"{category}/{filename}"

        await self.blob_store.upload(path, file.content, file.content_type)

        now = datetime.now(timezone.utc).isoformat()
        document = Document(
            id=str(uuid.uuid4()),
            filename=filename,
            original_filename=file.name,
            file_size=file.size,
            file_type=file.content_type,
            category=category,
            description=description,
            tags=list(tags or []),
            uploaded_by=uploaded_by,
            uploaded_at=now,
            last_modified_at=now
        )

        try:
            record = await self.store.insert(self.table, document.to_record())
        except StoreError as e:
            logger.error(f"Failed to store metadata for {file.name}: {e}")
            try:
                await self.blob_store.remove([path])
            except StoreError as cleanup_error:
                logger.warning(f"Failed to remove orphaned blob {path}: {cleanup_error}")
            raise

        logger.info(f"Uploaded document {file.name} as {path}")
        return self._with_url(record)

    async def list_documents(self, category: Optional[str] = None) -> List[Document]:
        """Documents, newest first, optionally restricted to one category."""
        filters = {"category": category} if category else None
        rows = await self.store.get(self.table, filters, order_by="uploaded_at", descending=True)
        return [self._with_url(row) for row in rows]

    async def get_document(self, document_id: str) -> Optional[Document]:
        row = await self.store.get_one(self.table, document_id)
        return self._with_url(row) if row else None

    async def search_documents(self, query: str) -> List[Document]:
        """Case-insensitive match on original filename, description or an exact tag."""
        needle = query.strip().lower()
        documents = await self.list_documents()
        if not needle:
            return documents
        return [
            doc for doc in documents
            if needle in doc.original_filename.lower()
            or needle in (doc.description or "").lower()
            or query.strip() in doc.tags
        ]

    async def update_document(self, document_id: str, updates: Dict[str, Any]) -> Document:
        """
        Update editable metadata (description, tags, uploaded_by).

        Columns fixed at upload time are ignored.
        """
        patch = {k: v for k, v in updates.items() if k not in IMMUTABLE_COLUMNS and k != "url"}
        dropped = set(updates) - set(patch)
        if dropped:
            logger.debug(f"Ignoring read-only document columns: {sorted(dropped)}")
        patch["last_modified_at"] = datetime.now(timezone.utc).isoformat()
        record = await self.store.update(self.table, document_id, patch)
        return self._with_url(record)

    async def download_document(self, document_id: str) -> Optional[bytes]:
        document = await self.get_document(document_id)
        if document is None:
            return None
        return await self.blob_store.download(document.path)

    async def delete_document(self, document_id: str) -> bool:
        """
        Remove the blob, then the metadata row.

        Returns:
            False if the document does not exist
        """
        document = await self.get_document(document_id)
        if document is None:
            logger.warning(f"Document {document_id} not found for deletion")
            return False

        await self.blob_store.remove([document.path])
        await self.store.delete(self.table, document_id)
        logger.info(f"Deleted document {document.original_filename}")
        return True
