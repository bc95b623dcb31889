from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Tuple


class PrivacyAction(str, Enum):
    GRANT = "grant"
    REVOKE = "revoke"
    RESET = "reset"


class PrivacyService(str, Enum):
    """Caller-facing services.

    Everything except `USER_TRACKING` and `FACE_ID` is accepted by
    `simctl privacy` itself.
    """

    ALL = "all"
    CALENDAR = "calendar"
    CONTACTS_LIMITED = "contacts-limited"
    CONTACTS = "contacts"
    LOCATION = "location"
    LOCATION_ALWAYS = "location-always"
    PHOTOS_ADD = "photos-add"
    PHOTOS = "photos"
    MEDIA_LIBRARY = "media-library"
    MICROPHONE = "microphone"
    MOTION = "motion"
    REMINDERS = "reminders"
    SIRI = "siri"
    USER_TRACKING = "user-tracking"
    FACE_ID = "face-id"


class Route(str, Enum):
    ALL = "all"
    TOOL = "tool"
    BYPASS = "bypass"


class ResultKind(str, Enum):
    SUCCESS = "success"
    INVALID_ACTION = "invalid_action"
    DATABASE_NOT_FOUND = "database_not_found"
    DATABASE_OPEN_FAILED = "database_open_failed"
    STATEMENT_FAILED = "statement_failed"
    MISSING_BUNDLE_IDENTIFIER = "missing_bundle_identifier"
    UNRECOGNIZED_SERVICE = "unrecognized_service"
    INVALID_DEVICE = "invalid_device"
    DISPATCH_FAILED = "dispatch_failed"


# auth_value tri-state stored in the access table.
AUTH_VALUE_DENIED = 0
AUTH_VALUE_UNKNOWN = 1
AUTH_VALUE_ALLOWED = 2

AUTH_REASON_USER_SET = 2
AUTH_VERSION = 1
CLIENT_TYPE_BUNDLE_ID = 0

# Declaration order is the order `all` writes and reports in.
BYPASS_SERVICES: Dict[PrivacyService, str] = {
    PrivacyService.USER_TRACKING: "kTCCServiceUserTracking",
    PrivacyService.FACE_ID: "kTCCServiceFaceID",
}

INTERNAL_PERMISSION_SET: Tuple[str, ...] = tuple(BYPASS_SERVICES.values())


def parse_action(value: object) -> Optional[PrivacyAction]:
    if isinstance(value, PrivacyAction):
        return value
    try:
        return PrivacyAction(str(value).strip().lower())
    except ValueError:
        return None


def parse_service(value: object) -> Optional[PrivacyService]:
    """Return the matching service, or None when it is not in the catalogue."""

    if isinstance(value, PrivacyService):
        return value
    try:
        return PrivacyService(str(value).strip().lower())
    except ValueError:
        return None


def route_for(service: PrivacyService) -> Route:
    if service is PrivacyService.ALL:
        return Route.ALL
    if service in BYPASS_SERVICES:
        return Route.BYPASS
    return Route.TOOL
