"""Shared constants for the task hierarchy engine."""

STATE_DIR_NAME = ".task_hierarchy"
CONFIG_FILE = "config.yaml"
STORE_FILENAME = "tasks.yaml"
LOCK_FILENAME = "tasks.lock"
STORE_VERSION = 1

# Gap between consecutive sibling positions.
POSITION_STEP = 1000
DEFAULT_DURATION_DAYS = 1

WINDOWS_LOCK_BYTES = 1024
