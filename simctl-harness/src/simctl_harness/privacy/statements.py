"""Parameterized statements against the TCC `access` table.

Service and client are always bound as parameters, never interpolated into
the SQL text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from simctl_harness.privacy.types import (
    AUTH_REASON_USER_SET,
    AUTH_VALUE_ALLOWED,
    AUTH_VALUE_DENIED,
    AUTH_VERSION,
    CLIENT_TYPE_BUNDLE_ID,
    PrivacyAction,
)

_UPSERT_SQL = (
    "REPLACE INTO access "
    "(service, client, client_type, auth_value, auth_reason, auth_version) "
    "VALUES (?, ?, ?, ?, ?, ?)"
)

_DELETE_SQL = "DELETE FROM access WHERE service = ? AND client = ?"


@dataclass(frozen=True)
class Statement:
    sql: str
    params: Tuple[Any, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"sql": self.sql, "params": list(self.params)}


def build_statement(
    action: PrivacyAction, internal_service_id: str, bundle_identifier: str
) -> Statement:
    if not isinstance(internal_service_id, str) or not internal_service_id.strip():
        raise ValueError("internal_service_id must be a non-empty string")
    if not isinstance(bundle_identifier, str) or not bundle_identifier.strip():
        raise ValueError("bundle_identifier must be a non-empty string")

    action = PrivacyAction(action)
    if action is PrivacyAction.RESET:
        return Statement(sql=_DELETE_SQL, params=(internal_service_id, bundle_identifier))

    auth_value = AUTH_VALUE_ALLOWED if action is PrivacyAction.GRANT else AUTH_VALUE_DENIED
    return Statement(
        sql=_UPSERT_SQL,
        params=(
            internal_service_id,
            bundle_identifier,
            CLIENT_TYPE_BUNDLE_ID,
            auth_value,
            AUTH_REASON_USER_SET,
            AUTH_VERSION,
        ),
    )
