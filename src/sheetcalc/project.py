"""Project-level configuration and scaffolding."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "sheetcalc.yaml"

DEFAULT_CONFIG = {
    "sheet_rows": 200,
    "sheet_cols": 40,
    "display_precision": 10,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

DEMO_CONFIG = """\
# sheetcalc project configuration
sheet_rows: 200
sheet_cols: 40
display_precision: 10
logging_fsync: false
"""

DEMO_SHEET = """\
# sheetcalc sheet snapshot
# Cells are stored as given; values are not recalculated on load.
cells:
  A1: {formula: "120", value: 120}
  A2: {formula: "0.15", value: 0.15}
  A3: {formula: "A1 * (1 - A2)", value: 102}
  B1: {formula: "A1 / 0", value: .inf, error: divide by zero}
"""


def load_project_config(project_dir: Path) -> dict[str, Any]:
    """Load project configuration from ``sheetcalc.yaml``, with defaults.

    Args:
        project_dir: Root of the sheetcalc project.

    Returns:
        Merged configuration dict.

    Raises:
        ValueError: If the config file is not a YAML mapping.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = Path(project_dir) / CONFIG_FILENAME
    if config_path.exists():
        try:
            user_config = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        config.update(user_config)
    return config


def scaffold_project(target_dir: Path) -> Path:
    """Create a new project with a default config and an example sheet.

    Args:
        target_dir: Directory to create.  Must not already contain a config.

    Returns:
        The project directory.

    Raises:
        FileExistsError: If ``sheetcalc.yaml`` already exists there.
    """
    target_dir = Path(target_dir)
    config_path = target_dir / CONFIG_FILENAME
    if config_path.exists():
        raise FileExistsError(f"Project already exists at {target_dir}")
    target_dir.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEMO_CONFIG)
    (target_dir / "sheet.yaml").write_text(DEMO_SHEET)
    (target_dir / "logs").mkdir(exist_ok=True)
    return target_dir
