"""
Submission adapter for the dynamic form engine.
Maps a validated, column-keyed payload to an insert or update in the CRUD store.
"""

import uuid
import logging
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .blob_store import BlobStore, FileUpload, is_file_value
from .crud_store import CrudStore
from .form_exceptions import StoreError, SubmissionError

logger = logging.getLogger(__name__)


def _sanitize_for_json(obj: Any) -> Any:
    """
    Recursively sanitize an object for JSON serialization.
    Converts date, datetime to ISO format strings and Decimal to float.
    """
    if isinstance(obj, dict):
        return {k: _sanitize_for_json(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_sanitize_for_json(item) for item in obj]
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return float(obj)
    else:
        return obj


class SubmissionAdapter:
    """Translates form submissions into CRUD store calls."""

    def __init__(self, store: CrudStore, blob_store: Optional[BlobStore] = None):
        self.store = store
        self.blob_store = blob_store

    async def submit(self, table_name: str, payload: Dict[str, Any],
                     record_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Insert or update a record.

        File values are uploaded first and replaced by their public URLs.

        Args:
            table_name: Backing table
            payload: Column -> value
            record_id: Id of the record to update; insert when None

        Returns:
            The stored record

        Raises:
            SubmissionError: If a file cannot be read, or an upload or the
                store call fails
        """
        uploaded: List[str] = []
        try:
            prepared = await self._upload_files(table_name, payload, uploaded)
            prepared = _sanitize_for_json(prepared)

            if record_id:
                record = await self.store.update(table_name, record_id, prepared)
                logger.info(f"Updated record {record_id} in {table_name}")
            else:
                record = await self.store.insert(table_name, prepared)
                logger.info(f"Inserted record {record.get('id')} into {table_name}")
            return record

        except (StoreError, OSError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Submission to {table_name} failed: {e}")
            await self._discard_uploads(uploaded)
            raise SubmissionError(table_name, e)

    async def _upload_files(self, table_name: str, payload: Dict[str, Any],
                            uploaded: List[str]) -> Dict[str, Any]:
        prepared = {}
        for column, value in payload.items():
            if is_file_value(value):
                prepared[column] = await self._upload_one(table_name, value, uploaded)
            elif isinstance(value, list) and value and all(is_file_value(v) for v in value):
                prepared[column] = [await self._upload_one(table_name, v, uploaded) for v in value]
            else:
                prepared[column] = value
        return prepared

    async def _upload_one(self, table_name: str, value: Any, uploaded: List[str]) -> str:
        if self.blob_store is None:
            raise SubmissionError(table_name, message=f"No file storage configured for {table_name}")

        upload = FileUpload.from_uploaded(value)
        filename = f"{uuid.uuid4()}.{upload.extension}" if upload.extension else str(uuid.uuid4())
        path = f"{table_name}/{filename}"

        await self.blob_store.upload(path, upload.content, upload.content_type)
        uploaded.append(path)
        return self.blob_store.get_public_url(path)

    async def _discard_uploads(self, paths: List[str]) -> None:
        if not paths or self.blob_store is None:
            return
        try:
            await self.blob_store.remove(paths)
        except StoreError as cleanup_error:
            logger.warning(f"Failed to remove {len(paths)} orphaned upload(s): {cleanup_error}")
