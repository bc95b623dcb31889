from __future__ import annotations

from pathlib import Path

import pytest
from tcc_fakes import DEVICE_UDID, FakeDispatcher, create_tcc_db

from simctl_harness.config import SimctlConfig
from simctl_harness.privacy.store import tcc_db_path


@pytest.fixture
def devices_root(tmp_path: Path) -> Path:
    root = tmp_path / "Devices"
    root.mkdir()
    return root


@pytest.fixture
def config(devices_root: Path) -> SimctlConfig:
    return SimctlConfig(devices_root=str(devices_root), busy_timeout_s=0.5)


@pytest.fixture
def tcc_db(devices_root: Path) -> Path:
    return create_tcc_db(tcc_db_path(devices_root, DEVICE_UDID))


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()
