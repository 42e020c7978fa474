"""Load optional engine configuration from `.task_hierarchy/config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .constants import CONFIG_FILE, DEFAULT_DURATION_DAYS, POSITION_STEP, STATE_DIR_NAME, STORE_FILENAME
from .io_utils import _load_data_with_error


@dataclass(frozen=True)
class EngineSettings:
    """Tunables for position allocation, durations, quota and storage."""

    position_step: int = POSITION_STEP
    default_duration: int = DEFAULT_DURATION_DAYS
    max_root_projects: Optional[int] = None
    store_file: str = STORE_FILENAME


def load_engine_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional engine config file.

    Args:
        project_dir: Directory holding the `.task_hierarchy/` state directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    project_dir = project_dir.resolve()
    path = project_dir / STATE_DIR_NAME / CONFIG_FILE
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _positive_int(raw: Any) -> Optional[int]:
    if isinstance(raw, bool) or not isinstance(raw, int):
        return None
    return raw if raw >= 1 else None


def get_engine_settings(config: dict[str, Any]) -> EngineSettings:
    """Map a config dictionary onto :class:`EngineSettings`.

    Invalid values are ignored and the default is kept.

    Args:
        config: Engine configuration dictionary.

    Returns:
        The resolved settings.
    """
    defaults = EngineSettings()
    step = _positive_int(_get_nested(config, "positions", "step"))
    # A step of 1 leaves no room for insertion between siblings.
    if step is not None and step < 2:
        step = None
    default_duration = _positive_int(_get_nested(config, "scheduling", "default_duration"))
    max_roots = _positive_int(_get_nested(config, "quota", "max_root_projects"))
    store_file = _get_nested(config, "storage", "file")
    return EngineSettings(
        position_step=step or defaults.position_step,
        default_duration=default_duration or defaults.default_duration,
        max_root_projects=max_roots,
        store_file=store_file if isinstance(store_file, str) and store_file else defaults.store_file,
    )
