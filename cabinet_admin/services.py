"""
Wiring of stores and services from configuration.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict

from .blob_store import BlobStore, create_blob_store
from .config_loader import get_config_value
from .crud_store import CrudStore, create_crud_store
from .document_service import DocumentService
from .form_definition import FormDefinition
from .form_engine import FormEngine
from .form_service import FORMS_TABLE, FormService
from .submission_handler import SubmissionAdapter

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Everything a page needs to talk to the backing stores."""

    store: CrudStore
    blob_store: BlobStore
    forms: FormService
    documents: DocumentService
    adapter: SubmissionAdapter
    validate_on_change: bool = True

    def create_engine(self, definition: FormDefinition) -> FormEngine:
        return FormEngine(definition, self.adapter, validate_on_change=self.validate_on_change)


def build_services(config: Dict[str, Any]) -> AppServices:
    """
    Build stores and services for a loaded configuration.

    Args:
        config: Complete configuration dictionary

    Returns:
        AppServices instance
    """
    store = create_crud_store(config)
    blob_store = create_blob_store(config)
    forms_table = get_config_value(config, 'store', 'forms_table', FORMS_TABLE)

    services = AppServices(
        store=store,
        blob_store=blob_store,
        forms=FormService(store, forms_table=forms_table),
        documents=DocumentService(store, blob_store),
        adapter=SubmissionAdapter(store, blob_store),
        validate_on_change=bool(get_config_value(config, 'ui', 'validate_on_change', True))
    )
    logger.info(f"Services ready: {type(store).__name__} / {type(blob_store).__name__}")
    return services
