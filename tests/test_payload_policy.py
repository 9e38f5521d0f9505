import pytest

from app.core.errors import AuthorizationError, ValidationError
from app.core.roles import Role
from app.schemas.pending_changes import EntityType
from app.services import payload_policy


def test_employee_property_payload_is_normalised():
    payload = payload_policy.validate_payload(
        EntityType.PROPERTY,
        Role.EMPLOYEE,
        {"title": "Sea Breeze", "price": "4500000", "amenities": ["Pool"]},
    )
    assert payload == {"title": "Sea Breeze", "price": "4500000", "amenities": ["Pool"]}


def test_agent_cannot_touch_type_or_categories():
    with pytest.raises(ValidationError) as exc_info:
        payload_policy.validate_payload(
            EntityType.PROPERTY,
            Role.AGENT,
            {"title": "Sea Breeze", "categories": ["Villa"], "type": "Hot"},
        )
    assert exc_info.value.code == "disallowed_fields"
    assert exc_info.value.details["fields"] == ["categories", "type"]


def test_one_unknown_key_rejects_whole_payload():
    with pytest.raises(ValidationError) as exc_info:
        payload_policy.validate_payload(
            EntityType.PROPERTY,
            Role.EMPLOYEE,
            {"title": "Sea Breeze", "assigned_employee_id": "x"},
        )
    assert exc_info.value.details["fields"] == ["assigned_employee_id"]


def test_empty_payload_rejected():
    with pytest.raises(ValidationError) as exc_info:
        payload_policy.validate_payload(EntityType.BANNER, Role.EMPLOYEE, {})
    assert exc_info.value.code == "empty_payload"


def test_type_errors_reported_per_field():
    with pytest.raises(ValidationError) as exc_info:
        payload_policy.validate_payload(EntityType.PROPERTY, Role.EMPLOYEE, {"price": -5})
    assert exc_info.value.code == "invalid_payload"
    assert exc_info.value.details["errors"][0]["field"] == "price"


def test_banner_display_order_is_admin_only():
    with pytest.raises(ValidationError):
        payload_policy.validate_payload(EntityType.BANNER, Role.EMPLOYEE, {"display_order": 2})
    merged = payload_policy.validate_payload(EntityType.BANNER, Role.ADMIN, {"display_order": 2})
    assert merged == {"display_order": 2}


def test_creation_requires_title():
    with pytest.raises(ValidationError) as exc_info:
        payload_policy.validate_payload(
            EntityType.PROPERTY, Role.EMPLOYEE, {"location": "Goa"}, is_create=True
        )
    assert exc_info.value.code == "missing_required_fields"


def test_agents_and_customers_cannot_propose_banners():
    for role in (Role.AGENT, Role.CUSTOMER):
        with pytest.raises(AuthorizationError):
            payload_policy.allowed_fields(EntityType.BANNER, role)
