"""Marshmallow schemas for audit events, alerts and query filters."""
from __future__ import annotations

from datetime import timezone
from typing import Any, Mapping

from marshmallow import (
    EXCLUDE,
    INCLUDE,
    Schema,
    ValidationError,
    fields,
    pre_load,
    validates_schema,
)
from marshmallow.validate import Length, OneOf, Range

from src.models.audit import EventKind, RiskLevel

RISK_LEVELS = [level.value for level in RiskLevel]


class AuditEventSchema(Schema):
    """Schema for serializing ``AuditEvent`` rows."""

    id = fields.Integer(required=True)
    event_kind = fields.String(required=True)
    actor_id = fields.String(allow_none=True)
    session_id = fields.String(allow_none=True)
    source_address = fields.String(allow_none=True)
    client_agent = fields.String(allow_none=True)
    risk_level = fields.String(required=True)
    description = fields.String(required=True)
    metadata = fields.Dict(
        attribute="event_metadata",
        keys=fields.String(),
        values=fields.Raw(),
        dump_default=dict,
    )
    created_at = fields.DateTime(required=True)


class SecurityAlertSchema(Schema):
    """Schema for serializing ``SecurityAlert`` rows."""

    id = fields.Integer(required=True)
    alert_type = fields.String(required=True)
    severity = fields.String(required=True)
    title = fields.String(required=True)
    description = fields.String(required=True)
    actor_id = fields.String(allow_none=True)
    source_address = fields.String(allow_none=True)
    metadata = fields.Dict(
        attribute="alert_metadata",
        keys=fields.String(),
        values=fields.Raw(),
        dump_default=dict,
    )
    resolved = fields.Boolean(required=True)
    resolved_at = fields.DateTime(allow_none=True)
    resolved_by = fields.String(allow_none=True)
    created_at = fields.DateTime(required=True)


class _QuerySchema(Schema):
    """Common pagination and date-range filters."""

    class Meta:
        unknown = EXCLUDE

    actor_id = fields.String(validate=Length(min=1, max=64))
    source_address = fields.String(validate=Length(min=1, max=64))
    date_from = fields.AwareDateTime(default_timezone=timezone.utc)
    date_to = fields.AwareDateTime(default_timezone=timezone.utc)
    limit = fields.Integer(validate=Range(min=1))
    offset = fields.Integer(validate=Range(min=0), load_default=0)

    @pre_load
    def _drop_blank(self, data: Any, **_: Any) -> Any:
        if isinstance(data, Mapping):
            return {
                key: value
                for key, value in data.items()
                if value not in (None, "")
            }
        return data

    @validates_schema
    def _check_range(self, data: dict[str, Any], **_: Any) -> None:
        start, end = data.get("date_from"), data.get("date_to")
        if start is not None and end is not None and start > end:
            raise ValidationError(
                "date_from must not be after date_to", "date_from"
            )


class EventQuerySchema(_QuerySchema):
    """Filters accepted by the event listing."""

    event_kind = fields.String(validate=Length(min=1, max=64))
    risk_level = fields.String(validate=OneOf(RISK_LEVELS))


class AlertQuerySchema(_QuerySchema):
    """Filters accepted by the alert listing."""

    alert_type = fields.String(validate=Length(min=1, max=64))
    severity = fields.String(validate=OneOf(RISK_LEVELS))
    resolved = fields.Boolean()


class RecordEventSchema(Schema):
    """Payload accepted by the ingest endpoint."""

    class Meta:
        unknown = EXCLUDE

    event_kind = fields.String(required=True, validate=Length(min=1, max=64))
    actor_id = fields.String(allow_none=True, validate=Length(max=64))
    session_id = fields.String(allow_none=True, validate=Length(max=128))
    source_address = fields.String(allow_none=True, validate=Length(max=64))
    client_agent = fields.String(allow_none=True, validate=Length(max=255))
    description = fields.String(allow_none=True, validate=Length(max=2000))
    metadata = fields.Dict(
        keys=fields.String(), values=fields.Raw(), load_default=dict
    )


class LoginMetadataSchema(Schema):
    class Meta:
        unknown = INCLUDE

    success = fields.Boolean(truthy={True}, falsy={False})


class AmountMetadataSchema(Schema):
    class Meta:
        unknown = INCLUDE

    amount = fields.Float(allow_none=True)
    payment_intent_id = fields.String(allow_none=True)


_LOGIN_METADATA = LoginMetadataSchema()
_AMOUNT_METADATA = AmountMetadataSchema()

METADATA_SCHEMAS: dict[str, Schema] = {
    EventKind.USER_LOGIN.value: _LOGIN_METADATA,
    EventKind.ADMIN_LOGIN.value: _LOGIN_METADATA,
    EventKind.CREDITS_PURCHASE.value: _AMOUNT_METADATA,
    EventKind.CREDITS_CONSUME.value: _AMOUNT_METADATA,
    EventKind.CREDITS_GRANT.value: _AMOUNT_METADATA,
    EventKind.CREDITS_REFUND.value: _AMOUNT_METADATA,
    EventKind.PAYMENT_INITIATED.value: _AMOUNT_METADATA,
    EventKind.PAYMENT_SUCCESS.value: _AMOUNT_METADATA,
    EventKind.PAYMENT_FAILED.value: _AMOUNT_METADATA,
    EventKind.PAYMENT_REFUND.value: _AMOUNT_METADATA,
}

__all__ = [
    "AlertQuerySchema",
    "AuditEventSchema",
    "EventQuerySchema",
    "METADATA_SCHEMAS",
    "RISK_LEVELS",
    "RecordEventSchema",
    "SecurityAlertSchema",
]
