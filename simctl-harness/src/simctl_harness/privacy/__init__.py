from __future__ import annotations

from simctl_harness.privacy.engine import (
    DispatchResult,
    ManageResult,
    PermissionOverrideEngine,
    RequestError,
    manage,
)
from simctl_harness.privacy.statements import Statement, build_statement
from simctl_harness.privacy.store import StoreResult, apply, tcc_db_path
from simctl_harness.privacy.types import PrivacyAction, PrivacyService, ResultKind

__all__ = [
    "DispatchResult",
    "ManageResult",
    "PermissionOverrideEngine",
    "PrivacyAction",
    "PrivacyService",
    "RequestError",
    "ResultKind",
    "Statement",
    "StoreResult",
    "apply",
    "build_statement",
    "manage",
    "tcc_db_path",
]
