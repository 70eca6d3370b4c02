"""Centralized path constants for EnrollBridge.

Every file and directory path used by the integration layer is defined here
as a module-level constant. Source files import from this module instead of
constructing ad-hoc ``Path(...)`` literals.

Design rules:
  1. This module imports ONLY ``pathlib.Path`` -- no project imports, no
     config imports, no runtime validation.
  2. No path existence checks at import time.  Callers decide what to do
     when a file is missing.
"""

from pathlib import Path

# ---------------------------------------------------------------------------
# -- Project Root --
# ---------------------------------------------------------------------------

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent
"""Absolute path to the project root directory (one level above ``enrollbridge/``)."""

# ---------------------------------------------------------------------------
# -- Config Paths --
# ---------------------------------------------------------------------------

CONFIG_DIR: Path = PROJECT_ROOT / "config"
"""Directory containing connector configuration files."""

CONNECTOR_CONFIG_PATH: Path = CONFIG_DIR / "enrollbridge.json"
"""Default connector configuration (endpoint, credentials env var, resilience)."""
