"""Project-level configuration and scaffolding."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from gridcalc.sheet import DEFAULT_COLS, DEFAULT_ROWS

CONFIG_FILENAME = "gridcalc.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "default_rows": DEFAULT_ROWS,
    "default_cols": DEFAULT_COLS,
    "sheets_dir": "sheets",
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
    "log_level": "warning",
}

DEMO_CONFIG = """\
# gridcalc project configuration
#
# Grid size for new sheets:
# default_rows: 1000
# default_cols: 1000
#
# Where sheet files are kept (relative to the project):
sheets_dir: sheets
#
# Event log options:
# logging_fsync: false
# logging_tail_bytes: 2097152
#
# Python logging level for the CLI and server:
# log_level: warning
"""


def load_config(project_dir: Path) -> dict[str, Any]:
    """Load project configuration from ``gridcalc.yaml``, with defaults.

    Args:
        project_dir: Root of the gridcalc project.

    Returns:
        Merged configuration dict.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = Path(project_dir) / CONFIG_FILENAME
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        config.update(user_config)
    return config


def sheets_path(project_dir: Path, config: dict[str, Any] | None = None) -> Path:
    """Directory holding the project's sheet files."""
    cfg = config if config is not None else load_config(project_dir)
    return Path(project_dir) / cfg["sheets_dir"]


def scaffold_project(target_dir: Path) -> Path:
    """Create a new project with a config file and one empty ``Sheet1``.

    Args:
        target_dir: Directory to create (must not already hold a config).

    Returns:
        Path to the created project directory.
    """
    from gridcalc.sheet import Sheet
    from gridcalc.storage import YamlSheetStore, sheet_to_record

    target_dir = Path(target_dir).resolve()
    target_dir.mkdir(parents=True, exist_ok=True)

    if (target_dir / CONFIG_FILENAME).exists():
        raise FileExistsError(f"{CONFIG_FILENAME} already exists in {target_dir}")

    (target_dir / CONFIG_FILENAME).write_text(DEMO_CONFIG)
    (target_dir / "logs").mkdir(exist_ok=True)

    cfg = load_config(target_dir)
    store = YamlSheetStore(sheets_path(target_dir, cfg))
    store.save(
        sheet_to_record(
            Sheet("sheet1", "Sheet1", n_rows=cfg["default_rows"], n_cols=cfg["default_cols"])
        )
    )
    return target_dir
