"""Role-scoped allow-lists for moderated-change payloads.

A payload is a partial field set for one canonical entity type. Callers may only
send the keys their role is allowed to edit; any other key rejects the whole
payload. Accepted payloads are normalised to JSON-safe values before they are
stored on a pending change.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import AuthorizationError, ValidationError
from app.core.roles import Role
from app.schemas.pending_changes import BannerPayload, EntityType, PropertyPayload


PROPERTY_EMPLOYEE_FIELDS = frozenset(
    {
        "title",
        "location",
        "price",
        "type",
        "description",
        "images",
        "gallery",
        "features",
        "amenities",
        "categories",
        "brochure_url",
        "map",
        "website",
    }
)
PROPERTY_AGENT_FIELDS = PROPERTY_EMPLOYEE_FIELDS - {"type", "categories"}
BANNER_EMPLOYEE_FIELDS = frozenset({"image_url", "title", "subtitle", "target_role", "is_active"})
BANNER_ADMIN_FIELDS = BANNER_EMPLOYEE_FIELDS | {"display_order"}

ALLOWED_FIELDS: dict[tuple[EntityType, Role], frozenset[str]] = {
    (EntityType.PROPERTY, Role.EMPLOYEE): PROPERTY_EMPLOYEE_FIELDS,
    (EntityType.PROPERTY, Role.AGENT): PROPERTY_AGENT_FIELDS,
    (EntityType.PROPERTY, Role.ADMIN): PROPERTY_EMPLOYEE_FIELDS,
    (EntityType.PROPERTY, Role.SUPER_ADMIN): PROPERTY_EMPLOYEE_FIELDS,
    (EntityType.BANNER, Role.EMPLOYEE): BANNER_EMPLOYEE_FIELDS,
    (EntityType.BANNER, Role.ADMIN): BANNER_ADMIN_FIELDS,
    (EntityType.BANNER, Role.SUPER_ADMIN): BANNER_ADMIN_FIELDS,
}

PAYLOAD_MODELS: dict[EntityType, type[BaseModel]] = {
    EntityType.PROPERTY: PropertyPayload,
    EntityType.BANNER: BannerPayload,
}

# Fields a brand-new canonical row cannot be inserted without.
REQUIRED_ON_CREATE: dict[EntityType, tuple[str, ...]] = {
    EntityType.PROPERTY: ("title",),
    EntityType.BANNER: ("image_url",),
}


def allowed_fields(entity_type: EntityType, role: Role) -> frozenset[str]:
    fields = ALLOWED_FIELDS.get((entity_type, role))
    if fields is None:
        raise AuthorizationError(
            code="change_not_permitted",
            message=f"Your role cannot propose {entity_type.value} changes",
            details={},
        )
    return fields


def validate_payload(
    entity_type: EntityType,
    role: Role,
    payload: dict[str, Any],
    *,
    is_create: bool = False,
) -> dict[str, Any]:
    """Check ``payload`` against the allow-list and field types; return the normalised payload."""
    if not isinstance(payload, dict) or not payload:
        raise ValidationError(
            code="empty_payload",
            message="Proposed payload must contain at least one field",
            details={"field": "proposed_payload"},
        )

    permitted = allowed_fields(entity_type, role)
    disallowed = sorted(set(payload) - permitted)
    if disallowed:
        raise ValidationError(
            code="disallowed_fields",
            message=f"Fields not allowed: {', '.join(disallowed)}",
            details={"fields": disallowed, "allowed": sorted(permitted)},
        )

    model = PAYLOAD_MODELS[entity_type]
    try:
        parsed = model.model_validate(payload)
    except PydanticValidationError as exc:
        errors = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in exc.errors()
        ]
        raise ValidationError(
            code="invalid_payload",
            message="Proposed payload is invalid",
            details={"errors": errors},
        ) from exc

    normalized = parsed.model_dump(mode="json", exclude_unset=True)

    if is_create:
        missing = [name for name in REQUIRED_ON_CREATE[entity_type] if normalized.get(name) in (None, "")]
        if missing:
            raise ValidationError(
                code="missing_required_fields",
                message=f"Missing required fields: {', '.join(missing)}",
                details={"fields": missing},
            )
    return normalized
