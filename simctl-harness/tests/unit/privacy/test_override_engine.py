from __future__ import annotations

import subprocess
import uuid
from pathlib import Path

import pytest
from tcc_fakes import DEVICE_UDID, FakeDispatcher, fetch_rows, insert_row

from simctl_harness.config import SimctlConfig
from simctl_harness.privacy.engine import PermissionOverrideEngine, manage, normalize_udid
from simctl_harness.privacy.types import PrivacyAction, PrivacyService, ResultKind


def _engine(config: SimctlConfig, dispatcher: FakeDispatcher) -> PermissionOverrideEngine:
    return PermissionOverrideEngine(config=config, dispatcher=dispatcher)


@pytest.mark.parametrize("action", list(PrivacyAction))
@pytest.mark.parametrize("bundle", ["com.example.app", "com.example.o'neil"])
def test_user_tracking_never_dispatches(config, dispatcher, tcc_db, action, bundle) -> None:
    engine = _engine(config, dispatcher)
    res = engine.manage(action, PrivacyService.USER_TRACKING, bundle, DEVICE_UDID)

    assert dispatcher.calls == []
    assert res.dispatch is None
    assert res.ok()
    assert res.text() == "Success"
    assert [e.service for e in res.entries] == ["kTCCServiceUserTracking"]


def test_grant_face_id_writes_single_row(config, dispatcher, tcc_db: Path) -> None:
    res = _engine(config, dispatcher).manage(
        "grant", "face-id", "com.example.app", uuid.UUID(DEVICE_UDID)
    )

    assert res.ok()
    assert dispatcher.calls == []
    assert fetch_rows(tcc_db) == [
        {
            "service": "kTCCServiceFaceID",
            "client": "com.example.app",
            "client_type": 0,
            "auth_value": 2,
            "auth_reason": 2,
            "auth_version": 1,
        }
    ]


def test_tool_service_delegates_to_simctl_only(config, dispatcher, tcc_db: Path) -> None:
    res = _engine(config, dispatcher).manage(
        PrivacyAction.GRANT, PrivacyService.PHOTOS, "com.example.app", DEVICE_UDID.lower()
    )

    assert res.ok()
    assert res.entries == []
    assert res.text() == "Success"
    assert dispatcher.calls == [
        {
            "action": "grant",
            "service": "photos",
            "device": DEVICE_UDID,
            "bundle_identifier": "com.example.app",
            "kwargs": {"check": False},
        }
    ]
    assert fetch_rows(tcc_db) == []


def test_tool_reset_without_bundle_is_allowed(config, dispatcher) -> None:
    res = _engine(config, dispatcher).manage("reset", "location", None, DEVICE_UDID)

    assert res.ok()
    assert dispatcher.calls[0]["bundle_identifier"] is None


def test_tool_failure_is_reported(config) -> None:
    dispatcher = FakeDispatcher(returncode=2, stderr="Invalid device")
    res = _engine(config, dispatcher).manage("grant", "microphone", "com.a", DEVICE_UDID)
    assert not res.ok()
    assert res.dispatch is not None
    assert res.dispatch.kind is ResultKind.DISPATCH_FAILED
    assert "Invalid device" in res.text()


def test_dispatcher_exception_is_captured(config) -> None:
    dispatcher = FakeDispatcher(raises=subprocess.TimeoutExpired(cmd="xcrun", timeout=1))
    res = _engine(config, dispatcher).manage("grant", "contacts", "com.a", DEVICE_UDID)

    assert not res.ok()
    assert res.dispatch is not None
    assert "TimeoutExpired" in str(res.dispatch)


@pytest.mark.parametrize("action", list(PrivacyAction))
def test_all_writes_each_internal_service_in_order(config, dispatcher, tcc_db, action) -> None:
    res = _engine(config, dispatcher).manage(action, "all", "com.example.app", DEVICE_UDID)

    assert [e.service for e in res.entries] == ["kTCCServiceUserTracking", "kTCCServiceFaceID"]
    assert res.text() == "Success,Success"
    assert len(dispatcher.calls) == 1
    assert dispatcher.calls[0]["service"] == "all"
    assert dispatcher.calls[0]["action"] == action.value


def test_reset_all_removes_both_rows(config, dispatcher, tcc_db: Path) -> None:
    insert_row(tcc_db, "kTCCServiceUserTracking", "com.example.app")
    insert_row(tcc_db, "kTCCServiceFaceID", "com.example.app", auth_value=0)
    insert_row(tcc_db, "kTCCServiceFaceID", "com.other.app")

    res = _engine(config, dispatcher).manage("reset", "all", "com.example.app", DEVICE_UDID)

    assert res.ok()
    assert len(res.text().split(",")) == 2
    assert [r["client"] for r in fetch_rows(tcc_db)] == ["com.other.app"]


def test_all_without_database_reports_every_entry(config, dispatcher) -> None:
    res = _engine(config, dispatcher).manage("grant", "all", "com.example.app", DEVICE_UDID)

    assert not res.ok()
    assert [e.kind for e in res.entries] == [ResultKind.DATABASE_NOT_FOUND] * 2
    assert res.text().count("TCC.db not found") == 2
    assert not Path(res.entries[0].db_path).exists()


def test_all_failed_dispatch_is_visible_in_text(config, tcc_db: Path) -> None:
    dispatcher = FakeDispatcher(returncode=1, stderr="boom")
    res = _engine(config, dispatcher).manage("grant", "all", "com.example.app", DEVICE_UDID)

    assert not res.ok()
    assert all(e.ok() for e in res.entries)
    assert res.text().startswith("Success,Success,")
    assert "boom" in res.text()


def test_all_continues_after_first_entry_fails(config, dispatcher, tcc_db, monkeypatch) -> None:
    from simctl_harness.privacy import store

    real_apply = store.apply

    def flaky_apply(db_path, statement, **kwargs):
        if kwargs.get("service") == "kTCCServiceUserTracking":
            return store.StoreResult(
                kind=ResultKind.STATEMENT_FAILED,
                message="SQLite error: database is locked",
                db_path=str(db_path),
                service=kwargs.get("service"),
            )
        return real_apply(db_path, statement, **kwargs)

    monkeypatch.setattr(store, "apply", flaky_apply)
    res = _engine(config, dispatcher).manage("grant", "all", "com.example.app", DEVICE_UDID)

    assert [e.kind for e in res.entries] == [ResultKind.STATEMENT_FAILED, ResultKind.SUCCESS]
    assert res.text() == "SQLite error: database is locked,Success"
    assert [r["service"] for r in fetch_rows(tcc_db)] == ["kTCCServiceFaceID"]
    assert not res.ok()


@pytest.mark.parametrize("service", ["user-tracking", "face-id", "all", "photos"])
@pytest.mark.parametrize("bundle", [None, "", "   "])
def test_missing_bundle_identifier_is_reported(config, dispatcher, tcc_db, service, bundle) -> None:
    res = _engine(config, dispatcher).manage("grant", service, bundle, DEVICE_UDID)

    assert res.error is not None
    assert res.error.kind is ResultKind.MISSING_BUNDLE_IDENTIFIER
    assert dispatcher.calls == []
    assert fetch_rows(tcc_db) == []


def test_reset_all_requires_bundle_identifier(config, dispatcher) -> None:
    res = _engine(config, dispatcher).manage("reset", "all", None, DEVICE_UDID)
    assert res.error is not None
    assert res.error.kind is ResultKind.MISSING_BUNDLE_IDENTIFIER


def test_unrecognized_service_is_not_redirected(config, dispatcher, tcc_db: Path) -> None:
    res = _engine(config, dispatcher).manage("grant", "bluetooth", "com.example.app", DEVICE_UDID)

    assert not res.ok()
    assert res.error is not None
    assert res.error.kind is ResultKind.UNRECOGNIZED_SERVICE
    assert "bluetooth" in res.text()
    assert dispatcher.calls == []
    assert fetch_rows(tcc_db) == []


def test_invalid_device_is_rejected(config, dispatcher) -> None:
    res = _engine(config, dispatcher).manage("grant", "face-id", "com.a", "../../etc")

    assert res.error is not None
    assert res.error.kind is ResultKind.INVALID_DEVICE


def test_booted_device_is_resolved_through_dispatcher(config, tcc_db: Path) -> None:
    dispatcher = FakeDispatcher(booted=DEVICE_UDID.lower())
    res = _engine(config, dispatcher).manage("grant", "user-tracking", "com.a", "booted")

    assert res.ok()
    assert res.device == DEVICE_UDID
    assert len(fetch_rows(tcc_db)) == 1


def test_no_booted_device_is_reported(config) -> None:
    dispatcher = FakeDispatcher(booted=None)
    res = _engine(config, dispatcher).manage("grant", "user-tracking", "com.a", "booted")

    assert res.error is not None
    assert res.error.kind is ResultKind.INVALID_DEVICE


@pytest.mark.parametrize("action", ["toggle", "", None, 3])
def test_unknown_action_is_reported(config, dispatcher, tcc_db: Path, action) -> None:
    res = _engine(config, dispatcher).manage(action, "face-id", "com.a", DEVICE_UDID)

    assert not res.ok()
    assert res.error is not None
    assert res.error.kind is ResultKind.INVALID_ACTION
    assert res.to_dict()["error"]["kind"] == "invalid_action"
    assert dispatcher.calls == []
    assert fetch_rows(tcc_db) == []


def test_non_string_bundle_identifier_is_stringified(config, dispatcher, tcc_db: Path) -> None:
    res = _engine(config, dispatcher).manage("grant", "face-id", 123, DEVICE_UDID)

    assert res.ok()
    assert res.bundle_identifier == "123"
    assert [r["client"] for r in fetch_rows(tcc_db)] == ["123"]


def test_bypass_without_database_never_dispatches(config, dispatcher, devices_root) -> None:
    res = _engine(config, dispatcher).manage(
        "grant", "user-tracking", "com.example.app", DEVICE_UDID
    )

    assert dispatcher.calls == []
    assert res.dispatch is None
    assert not res.ok()
    assert [e.kind for e in res.entries] == [ResultKind.DATABASE_NOT_FOUND]
    assert res.text().startswith("TCC.db not found at ")
    assert not (devices_root / DEVICE_UDID).exists()


def test_module_level_manage_and_to_dict(config, dispatcher, tcc_db: Path) -> None:
    res = manage(
        "revoke",
        "user-tracking",
        " com.example.app ",
        DEVICE_UDID,
        config=config,
        dispatcher=dispatcher,
    )

    payload = res.to_dict()
    assert payload["ok"] is True
    assert payload["bundle_identifier"] == "com.example.app"
    assert payload["entries"][0]["kind"] == "success"
    assert payload["dispatch"] is None
    assert fetch_rows(tcc_db)[0]["auth_value"] == 0


def test_normalize_udid() -> None:
    assert normalize_udid(DEVICE_UDID.lower()) == DEVICE_UDID
    assert normalize_udid(uuid.UUID(DEVICE_UDID)) == DEVICE_UDID
    assert normalize_udid("not-a-uuid") is None
