"""Map audited actions to a risk level and a localized description."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from src.models.audit import EventKind, RiskLevel, kind_value
from src.schemas.audit import METADATA_SCHEMAS

logger = logging.getLogger(__name__)

UNKNOWN_DESCRIPTION = "Nieznane zdarzenie"

_KIND_DESCRIPTIONS: dict[EventKind, str] = {
    EventKind.USER_LOGOUT: "Użytkownik wylogował się",
    EventKind.USER_REGISTER: "Nowy użytkownik zarejestrował się",
    EventKind.PASSWORD_CHANGE: "Użytkownik zmienił hasło",
    EventKind.EMAIL_CHANGE: "Użytkownik zmienił adres e-mail",
    EventKind.ACCOUNT_DELETE: "Użytkownik usunął konto",
    EventKind.DESKTOP_AUTH: "Uwierzytelnienie aplikacji desktopowej",
    EventKind.DESKTOP_SESSION_CREATE: "Utworzono sesję aplikacji desktopowej",
    EventKind.DESKTOP_SESSION_EXPIRE: "Sesja aplikacji desktopowej wygasła",
    EventKind.API_KEY_GENERATE: "Wygenerowano klucz API",
    EventKind.CREDITS_PURCHASE: "Zakup kredytów",
    EventKind.CREDITS_CONSUME: "Wykorzystanie kredytów",
    EventKind.CREDITS_GRANT: "Przyznanie kredytów",
    EventKind.CREDITS_REFUND: "Zwrot kredytów",
    EventKind.PAYMENT_INITIATED: "Rozpoczęcie płatności",
    EventKind.PAYMENT_SUCCESS: "Płatność zakończona sukcesem",
    EventKind.PAYMENT_FAILED: "Płatność nieudana",
    EventKind.PAYMENT_REFUND: "Zwrot płatności",
    EventKind.RATE_LIMIT_EXCEEDED: "Przekroczenie limitu żądań",
    EventKind.INVALID_TOKEN: "Nieprawidłowy token",
    EventKind.CSRF_VIOLATION: "Naruszenie ochrony CSRF",
    EventKind.SUSPICIOUS_ACTIVITY: "Podejrzana aktywność",
    EventKind.ERROR_OCCURRED: "Wystąpił błąd systemu",
    EventKind.SYSTEM_BACKUP: "Kopia zapasowa systemu",
    EventKind.SYSTEM_MAINTENANCE: "Konserwacja systemu",
    EventKind.ADMIN_LOGIN: "Administrator zalogował się",
    EventKind.ADMIN_USER_VIEW: "Administrator przeglądał dane użytkownika",
    EventKind.ADMIN_CREDIT_ADJUST: "Administrator dostosował kredyty",
    EventKind.ADMIN_SUPPORT_ACTION: "Administrator wykonał akcję wsparcia",
}
_DESCRIPTIONS = {kind.value: text for kind, text in _KIND_DESCRIPTIONS.items()}

_LOGIN_SUCCESS = "Użytkownik zalogował się"
_LOGIN_FAILURE = "Nieudana próba logowania"

_FIXED_RISK: dict[str, RiskLevel] = {
    EventKind.ACCOUNT_DELETE.value: RiskLevel.HIGH,
    EventKind.CSRF_VIOLATION.value: RiskLevel.HIGH,
    EventKind.SUSPICIOUS_ACTIVITY.value: RiskLevel.HIGH,
    EventKind.RATE_LIMIT_EXCEEDED.value: RiskLevel.MEDIUM,
    EventKind.INVALID_TOKEN.value: RiskLevel.MEDIUM,
    EventKind.ERROR_OCCURRED.value: RiskLevel.MEDIUM,
    EventKind.PASSWORD_CHANGE.value: RiskLevel.MEDIUM,
    EventKind.EMAIL_CHANGE.value: RiskLevel.MEDIUM,
    EventKind.PAYMENT_FAILED.value: RiskLevel.MEDIUM,
}


@dataclass(frozen=True, slots=True)
class Classification:
    risk_level: RiskLevel
    description: str


def is_failed_login(metadata: Mapping[str, Any] | None) -> bool:
    """A login only counts as failed when ``success`` is literally ``False``."""

    return bool(metadata) and metadata.get("success") is False


def risk_level_for(
    kind: EventKind | str, metadata: Mapping[str, Any] | None = None
) -> RiskLevel:
    tag = kind_value(kind)
    if tag == EventKind.USER_LOGIN.value:
        return RiskLevel.MEDIUM if is_failed_login(metadata) else RiskLevel.LOW
    return _FIXED_RISK.get(tag, RiskLevel.LOW)


def describe(
    kind: EventKind | str, metadata: Mapping[str, Any] | None = None
) -> str:
    tag = kind_value(kind)
    if tag == EventKind.USER_LOGIN.value:
        succeeded = bool(metadata and metadata.get("success"))
        return _LOGIN_SUCCESS if succeeded else _LOGIN_FAILURE
    return _DESCRIPTIONS.get(tag, UNKNOWN_DESCRIPTION)


def classify(
    kind: EventKind | str, metadata: Mapping[str, Any] | None = None
) -> Classification:
    """Return the risk level and description for an action.

    Total over any input: unknown kinds are classified as ``low`` with a
    generic description.
    """

    return Classification(
        risk_level=risk_level_for(kind, metadata),
        description=describe(kind, metadata),
    )


def validate_metadata(
    kind: EventKind | str, metadata: Mapping[str, Any] | None
) -> dict[str, list[str]]:
    """Check the well-known keys of ``metadata`` for ``kind``.

    Returns marshmallow's error mapping; an empty dict means the metadata is
    valid. Kinds without a schema accept any mapping.
    """

    if not metadata:
        return {}
    schema = METADATA_SCHEMAS.get(kind_value(kind))
    if schema is None:
        return {}
    errors = schema.validate(dict(metadata))
    if errors:
        logger.warning(
            "audit.metadata.invalid kind=%s errors=%s", kind_value(kind), errors
        )
    return errors


__all__ = [
    "Classification",
    "UNKNOWN_DESCRIPTION",
    "classify",
    "describe",
    "is_failed_login",
    "risk_level_for",
    "validate_metadata",
]
