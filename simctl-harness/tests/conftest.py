from __future__ import annotations

import sys
from pathlib import Path


def _ensure_src_on_path() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_str = str(repo_root / "src")
    if src_str not in sys.path:
        sys.path.insert(0, src_str)

    # TCC database helpers shared by privacy and cli tests.
    privacy_tests_root = Path(__file__).resolve().parent / "unit" / "privacy"
    privacy_tests_root_str = str(privacy_tests_root)
    if privacy_tests_root.is_dir() and privacy_tests_root_str not in sys.path:
        sys.path.insert(0, privacy_tests_root_str)


_ensure_src_on_path()
