from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
DEFAULT_CONFIG = REPO_ROOT / "config.yaml"


def ensure_src_on_path() -> None:
    """Make `c3d_stream` importable from a source checkout that was not pip-installed."""

    if str(SRC_ROOT) not in sys.path:
        sys.path.insert(0, str(SRC_ROOT))
