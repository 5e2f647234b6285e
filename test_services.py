"""
Unit tests for service wiring.
"""

import asyncio

from cabinet_admin.blob_store import LocalBlobStore
from cabinet_admin.config_loader import get_default_config
from cabinet_admin.crud_store import InMemoryCrudStore
from cabinet_admin.form_engine import FormState
from cabinet_admin.services import build_services


def _config(tmp_path, **ui):
    config = get_default_config()
    config['storage']['local_dir'] = str(tmp_path / "uploads")
    config['ui'].update(ui)
    return config


class TestBuildServices:
    """Test cases for build_services."""

    def test_default_backends(self, tmp_path):
        services = build_services(_config(tmp_path))

        assert isinstance(services.store, InMemoryCrudStore)
        assert isinstance(services.blob_store, LocalBlobStore)
        assert services.forms.store is services.store
        assert services.documents.blob_store is services.blob_store
        assert services.adapter.blob_store is services.blob_store

    def test_forms_table_from_config(self, tmp_path):
        config = _config(tmp_path)
        config['store']['forms_table'] = 'form_definitions'

        assert build_services(config).forms.forms_table == 'form_definitions'

    def test_create_engine_uses_validate_on_change(self, tmp_path):
        services = build_services(_config(tmp_path, validate_on_change=False))
        asyncio.run(services.forms.ensure_defaults())
        product = asyncio.run(services.forms.get_form_by_name("Product Form"))

        engine = services.create_engine(product)

        assert engine.validate_on_change is False
        assert engine.adapter is services.adapter
        assert engine.state == FormState.IDLE

    def test_product_form_end_to_end(self, tmp_path):
        services = build_services(_config(tmp_path))
        asyncio.run(services.forms.ensure_defaults())
        product = asyncio.run(services.forms.get_form_by_name("Product Form"))

        engine = services.create_engine(product)
        engine.start()
        engine.set_value("product_name", "Wall cabinet")
        engine.set_value("product_price", 149.0)
        result = asyncio.run(engine.submit())

        assert result.success is True
        rows = asyncio.run(services.store.get("products"))
        assert rows[0]["name"] == "Wall cabinet"
        assert rows[0]["price"] == 149.0
        assert rows[0]["description"] == ""
