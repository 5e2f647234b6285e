"""
Built-in form definitions seeded into an empty forms table.
Field ids are fixed so repeated seeding resolves to the same rows.
"""

from typing import Any, Dict, List

from .form_definition import FormDefinition

PRODUCT_FORM: Dict[str, Any] = {
    "name": "Product Form",
    "description": "Form for managing product information",
    "table_name": "products",
    "is_system": True,
    "fields": [
        {
            "id": "product_name",
            "label": "Name",
            "type": "text",
            "placeholder": "Enter product name",
            "required": True,
            "order": 0,
            "dbField": "name",
            "isSystem": True,
        },
        {
            "id": "product_description",
            "label": "Description",
            "type": "textarea",
            "placeholder": "Enter product description",
            "order": 1,
            "dbField": "description",
            "isSystem": True,
        },
        {
            "id": "product_price",
            "label": "Price",
            "type": "number",
            "placeholder": "Enter product price",
            "required": True,
            "order": 2,
            "dbField": "price",
            "isSystem": True,
            "min": 0,
            "step": 0.01,
        },
    ],
}

COMPONENT_FORM: Dict[str, Any] = {
    "name": "Component Form",
    "description": "Form for managing component information",
    "table_name": "components",
    "is_system": True,
    "fields": [
        {
            "id": "component_name",
            "label": "Name",
            "type": "text",
            "placeholder": "Enter component name",
            "required": True,
            "order": 0,
            "dbField": "name",
            "isSystem": True,
        },
        {
            "id": "component_type",
            "label": "Type",
            "type": "select",
            "placeholder": "Select component type",
            "required": True,
            "order": 1,
            "dbField": "category",
            "isSystem": True,
            "options": [
                {"value": "hardware", "label": "Hardware"},
                {"value": "door", "label": "Door"},
                {"value": "shelf", "label": "Shelf"},
                {"value": "panel", "label": "Panel"},
            ],
        },
        {
            "id": "component_cost",
            "label": "Cost",
            "type": "number",
            "placeholder": "Enter component cost",
            "required": True,
            "order": 2,
            "dbField": "cost",
            "isSystem": True,
            "min": 0,
            "step": 0.01,
        },
    ],
}


def get_default_forms() -> List[FormDefinition]:
    """Fresh copies of the built-in definitions."""
    return [FormDefinition.model_validate(form) for form in (PRODUCT_FORM, COMPONENT_FORM)]
