"""Privacy permission overrides for simulator devices.

`simctl privacy` handles most services, but not user-tracking or face-id.
For those the override is written straight into the device's TCC database.

Routing per requested service:
  * tool services:   `simctl privacy` only
  * bypass services: TCC database write only, simctl is never invoked
  * `all`:           one TCC write per bypass service (declared order), then
                     `simctl privacy ... all`

The database writes and the simctl call are separate steps with separate
outcomes. Nothing makes them atomic together: if the process dies between
them the two states can disagree until the request is repeated.
"""

from __future__ import annotations

import logging
import subprocess
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from simctl_harness.config import SimctlConfig
from simctl_harness.privacy import store
from simctl_harness.privacy.statements import build_statement
from simctl_harness.privacy.types import (
    BYPASS_SERVICES,
    INTERNAL_PERMISSION_SET,
    PrivacyAction,
    PrivacyService,
    ResultKind,
    Route,
    parse_action,
    parse_service,
    route_for,
)
from simctl_harness.runtime.ios.controller import SimctlController, SimctlControllerError

logger = logging.getLogger(__name__)

BOOTED_DEVICE = "booted"


@dataclass(frozen=True)
class DispatchResult:
    kind: ResultKind
    args: Sequence[str] = ()
    stdout: str = ""
    stderr: str = ""
    returncode: Optional[int] = None
    exception: Optional[str] = None

    def ok(self) -> bool:
        return self.kind is ResultKind.SUCCESS

    def __str__(self) -> str:
        if self.ok():
            return "Success"
        if self.exception:
            return f"simctl privacy failed: {self.exception}"
        detail = (self.stderr or self.stdout or "").strip()
        return f"simctl privacy failed (rc={self.returncode}): {detail}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "args": list(self.args),
            "stdout": self.stdout,
            "stderr": self.stderr,
            "returncode": self.returncode,
            "exception": self.exception,
        }


@dataclass(frozen=True)
class RequestError:
    kind: ResultKind
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class ManageResult:
    action: str
    service: str
    device: str
    bundle_identifier: Optional[str]
    entries: List[store.StoreResult] = field(default_factory=list)
    dispatch: Optional[DispatchResult] = None
    error: Optional[RequestError] = None

    def ok(self) -> bool:
        if self.error is not None:
            return False
        if self.dispatch is not None and not self.dispatch.ok():
            return False
        return all(entry.ok() for entry in self.entries)

    def text(self) -> str:
        """Comma-joined status text, one part per database write.

        Tool-only requests report the simctl status instead. A failed simctl
        call is appended after the database parts so it is never hidden.
        Precondition failures report only the error.
        """

        if self.error is not None:
            return str(self.error)
        parts = [str(entry) for entry in self.entries]
        if self.dispatch is not None and (not parts or not self.dispatch.ok()):
            parts.append(str(self.dispatch))
        return ",".join(parts)

    def __str__(self) -> str:
        return self.text()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok(),
            "action": self.action,
            "service": self.service,
            "device": self.device,
            "bundle_identifier": self.bundle_identifier,
            "text": self.text(),
            "entries": [entry.to_dict() for entry in self.entries],
            "dispatch": self.dispatch.to_dict() if self.dispatch is not None else None,
            "error": (
                {"kind": self.error.kind.value, "message": self.error.message}
                if self.error is not None
                else None
            ),
        }


def normalize_udid(device: object) -> Optional[str]:
    """Upper-case canonical UDID, or None when device is not a UUID."""

    if isinstance(device, uuid.UUID):
        return str(device).upper()
    try:
        return str(uuid.UUID(str(device).strip())).upper()
    except ValueError:
        return None


class PermissionOverrideEngine:
    def __init__(
        self,
        *,
        config: Optional[SimctlConfig] = None,
        dispatcher: Any = None,
    ) -> None:
        self._config = config or SimctlConfig()
        self._dispatcher = dispatcher if dispatcher is not None else SimctlController(self._config)

    def manage(
        self,
        action: PrivacyAction | str,
        service: PrivacyService | str,
        bundle_identifier: Optional[str],
        device: uuid.UUID | str,
    ) -> ManageResult:
        def _failed(kind: ResultKind, message: str) -> ManageResult:
            logger.warning("privacy %s %s rejected: %s", action_text, service_text, message)
            return ManageResult(
                action=action_text,
                service=service_text,
                device=device_text,
                bundle_identifier=bundle_identifier,
                error=RequestError(kind=kind, message=message),
            )

        action_text = getattr(action, "value", str(action))
        service_text = getattr(service, "value", str(service))
        device_text = str(device)
        if bundle_identifier is not None:
            bundle_identifier = str(bundle_identifier).strip() or None

        parsed_action = parse_action(action)
        if parsed_action is None:
            return _failed(
                ResultKind.INVALID_ACTION,
                f"unknown privacy action: {action_text!r}",
            )

        parsed_service = parse_service(service)
        if parsed_service is None:
            return _failed(
                ResultKind.UNRECOGNIZED_SERVICE,
                f"unrecognized privacy service: {service_text!r}",
            )

        route = route_for(parsed_service)
        needs_bundle = route is not Route.TOOL or parsed_action is not PrivacyAction.RESET
        if needs_bundle and not bundle_identifier:
            return _failed(
                ResultKind.MISSING_BUNDLE_IDENTIFIER,
                f"bundle identifier is required to {parsed_action.value} {parsed_service.value}",
            )

        udid = self._resolve_device(device)
        if udid is None:
            return _failed(ResultKind.INVALID_DEVICE, f"invalid or unknown device: {device_text!r}")
        device_text = udid

        logger.info(
            "privacy %s %s for %s on %s (route=%s)",
            parsed_action.value,
            parsed_service.value,
            bundle_identifier or "<all apps>",
            udid,
            route.value,
        )

        entries: List[store.StoreResult] = []
        dispatch: Optional[DispatchResult] = None

        if route is Route.ALL:
            for internal_id in INTERNAL_PERMISSION_SET:
                entries.append(self._write(parsed_action, internal_id, bundle_identifier, udid))
            dispatch = self._dispatch(parsed_action, parsed_service, udid, bundle_identifier)
        elif route is Route.BYPASS:
            internal_id = BYPASS_SERVICES[parsed_service]
            entries.append(self._write(parsed_action, internal_id, bundle_identifier, udid))
        else:
            dispatch = self._dispatch(parsed_action, parsed_service, udid, bundle_identifier)

        return ManageResult(
            action=parsed_action.value,
            service=parsed_service.value,
            device=udid,
            bundle_identifier=bundle_identifier,
            entries=entries,
            dispatch=dispatch,
        )

    def db_path(self, udid: str) -> Path:
        return store.tcc_db_path(self._config.resolved_devices_root(), udid)

    def _resolve_device(self, device: object) -> Optional[str]:
        if isinstance(device, str) and device.strip().lower() == BOOTED_DEVICE:
            if not hasattr(self._dispatcher, "booted_device_udid"):
                return None
            try:
                booted = self._dispatcher.booted_device_udid()
            except (SimctlControllerError, OSError, subprocess.TimeoutExpired) as e:
                logger.warning("failed to resolve booted device: %s", e)
                return None
            return normalize_udid(booted) if booted else None
        return normalize_udid(device)

    def _write(
        self,
        action: PrivacyAction,
        internal_id: str,
        bundle_identifier: str,
        udid: str,
    ) -> store.StoreResult:
        statement = build_statement(action, internal_id, bundle_identifier)
        return store.apply(
            self.db_path(udid),
            statement,
            service=internal_id,
            busy_timeout_s=self._config.busy_timeout_s,
        )

    def _dispatch(
        self,
        action: PrivacyAction,
        service: PrivacyService,
        udid: str,
        bundle_identifier: Optional[str],
    ) -> DispatchResult:
        try:
            res = self._dispatcher.privacy(
                action.value, service.value, udid, bundle_identifier, check=False
            )
        except (SimctlControllerError, OSError, subprocess.TimeoutExpired) as e:
            logger.warning("simctl privacy %s %s failed: %r", action.value, service.value, e)
            return DispatchResult(kind=ResultKind.DISPATCH_FAILED, exception=repr(e))

        returncode = getattr(res, "returncode", None)
        kind = ResultKind.SUCCESS if returncode == 0 else ResultKind.DISPATCH_FAILED
        if kind is not ResultKind.SUCCESS:
            logger.warning(
                "simctl privacy %s %s returned rc=%s", action.value, service.value, returncode
            )
        return DispatchResult(
            kind=kind,
            args=list(getattr(res, "args", None) or []),
            stdout=str(getattr(res, "stdout", "") or ""),
            stderr=str(getattr(res, "stderr", "") or ""),
            returncode=returncode,
        )


def manage(
    action: PrivacyAction | str,
    service: PrivacyService | str,
    bundle_identifier: Optional[str],
    device: uuid.UUID | str,
    *,
    config: Optional[SimctlConfig] = None,
    dispatcher: Any = None,
) -> ManageResult:
    engine = PermissionOverrideEngine(config=config, dispatcher=dispatcher)
    return engine.manage(action, service, bundle_identifier, device)
