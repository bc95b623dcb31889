"""iOS simulator controller utilities.

A thin wrapper around `xcrun simctl`, limited to what privacy overrides
need:
  * `simctl privacy <device> <action> <service> [<bundle identifier>]`
  * resolving the `booted` alias to a concrete UDID

Notes
-----
* The "testing" device set (`--set testing`) is part of the controller's
  configuration and is passed on every invocation; there is no process-wide
  switch.
* All operations are intended for simulator use only.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from simctl_harness.config import SimctlConfig

logger = logging.getLogger(__name__)


class SimctlControllerError(RuntimeError):
    """Raised when a simctl operation fails."""


@dataclass(frozen=True)
class SimctlResult:
    args: list[str]
    stdout: str
    stderr: str
    returncode: int

    def ok(self) -> bool:
        return self.returncode == 0


def _first_booted_udid(listing: Dict[str, Any]) -> Optional[str]:
    devices = listing.get("devices")
    if not isinstance(devices, dict):
        return None
    # simctl lists runtimes in its own order; the first booted entry wins.
    for entries in devices.values():
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            if str(entry.get("state", "")).lower() != "booted":
                continue
            udid = entry.get("udid")
            if isinstance(udid, str) and udid.strip():
                return udid.strip()
    return None


class SimctlController:
    """Thin wrapper around xcrun simctl for privacy overrides."""

    def __init__(self, config: Optional[SimctlConfig] = None) -> None:
        self._config = config or SimctlConfig()

    def _base_cmd(self) -> list[str]:
        cmd = [self._config.xcrun_path, "simctl"]
        if self._config.testing:
            cmd += ["--set", "testing"]
        return cmd

    def simctl(
        self, *args: str, timeout_s: float | None = None, check: bool = True
    ) -> SimctlResult:
        """Run a simctl subcommand and return stdout/stderr/returncode."""

        cmd = self._base_cmd() + [str(a) for a in args]
        logger.debug("running %s", " ".join(cmd))
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=self._config.timeout_s if timeout_s is None else float(timeout_s),
        )
        result = SimctlResult(
            args=cmd,
            stdout=proc.stdout,
            stderr=proc.stderr,
            returncode=proc.returncode,
        )
        if check and not result.ok():
            raise SimctlControllerError(
                f"simctl command failed (rc={result.returncode}): {' '.join(cmd)}\n"
                f"stdout: {result.stdout}\n"
                f"stderr: {result.stderr}"
            )
        return result

    def privacy(
        self,
        action: str,
        service: str,
        device: str,
        bundle_identifier: Optional[str] = None,
        *,
        timeout_s: float | None = None,
        check: bool = True,
    ) -> SimctlResult:
        args: List[str] = ["privacy", str(device), str(action), str(service)]
        if bundle_identifier:
            args.append(str(bundle_identifier))
        return self.simctl(*args, timeout_s=timeout_s, check=check)

    def booted_device_udid(self, *, timeout_s: float | None = None) -> Optional[str]:
        """UDID of the first booted simulator, or None when nothing is booted."""

        res = self.simctl("list", "devices", "booted", "--json", timeout_s=timeout_s)
        try:
            listing = json.loads(res.stdout or "{}")
        except json.JSONDecodeError as e:
            raise SimctlControllerError(f"unparseable simctl list output: {e}") from e
        if not isinstance(listing, dict):
            return None
        return _first_booted_udid(listing)
