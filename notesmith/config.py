"""
NoteSmith Configuration Module
Centralized configuration for the formatting engines and the worker layer.
"""

import copy
import os
from pathlib import Path

import yaml

# Debug Mode Configuration
DEBUG_MODE = os.environ.get('DEBUG', 'false').lower() == 'true'

# Application Paths
APP_NAME = "NoteSmith"
APPDATA_DIR = Path(
    os.environ.get('NOTESMITH_HOME')
    or Path(os.environ.get('APPDATA', os.path.expanduser('~/.config'))) / APP_NAME
)
LOGS_DIR = APPDATA_DIR / "logs"
CONFIG_DIR = APPDATA_DIR / "config"

# Ensure directories exist
for directory in [APPDATA_DIR, LOGS_DIR, CONFIG_DIR]:
    directory.mkdir(parents=True, exist_ok=True)

# User preferences (default format, resource usage, worker override)
USER_PREFERENCES_FILE = CONFIG_DIR / "user_preferences.json"

# Logging Configuration
LOG_FILE = LOGS_DIR / "processing.log"
DEBUG_TRACE_FILE = LOGS_DIR / "debug_flow.txt"
LOG_FORMAT = "[%(levelname)s %(asctime)s] %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

# Input Limits
# Inputs above the warning size still format, but the facade logs a warning.
MAX_INPUT_CHARS = 2_000_000
LARGE_INPUT_WARNING_CHARS = 250_000

# Rendering
PREVIEW_CHARS = 200  # History entry previews

# Pipeline progress checkpoints (percent, step name)
# Cancellation is observed at each checkpoint, never between them.
PROGRESS_CHECKPOINTS = (
    (0, "Starting"),
    (20, "Splitting lines"),
    (40, "Classifying lines"),
    (60, "Organizing document"),
    (80, "Rendering output"),
    (100, "Complete"),
)

# Worker Pool Configuration
#
# User Override Options:
# - USER_PICKS_MAX_WORKER_COUNT: If True, use USER_DEFINED_MAX_WORKER_COUNT
#   instead of auto-detection. Default: False (auto-detect based on CPU)
# - USER_DEFINED_MAX_WORKER_COUNT: Manual worker count when override enabled.
#   Range: 1-8.
#
# Formatting is CPU-light regex work, so the auto-detected cap stays at 4.
USER_PICKS_MAX_WORKER_COUNT = False
USER_DEFINED_MAX_WORKER_COUNT = 2

_user_workers = max(1, min(8, USER_DEFINED_MAX_WORKER_COUNT))

if USER_PICKS_MAX_WORKER_COUNT:
    PARALLEL_MAX_WORKERS = _user_workers
else:
    PARALLEL_MAX_WORKERS = min(os.cpu_count() or 4, 4)

POOL_MIN_WORKERS = 1
POOL_MAX_QUEUE_SIZE = 100
POOL_IDLE_TIMEOUT_MS = 30_000
POOL_READY_TIMEOUT_SECONDS = 5.0  # init() waits this long for workers to report ready
POOL_SHUTDOWN_TIMEOUT_SECONDS = 5.0
POOL_MAINTENANCE_INTERVAL_SECONDS = 1.0

# Error Recovery Configuration
RECOVERY_MAX_RETRIES = 3
RECOVERY_RETRY_DELAY_MS = 100
RECOVERY_JITTER = True
RECOVERY_CACHE_EXPIRATION_MS = 60 * 60 * 1000  # 1 hour
RECOVERY_ESCALATION_THRESHOLD = 10  # errors within the escalation window
RECOVERY_ESCALATION_WINDOW_MS = 10 * 60 * 1000
RECOVERY_HISTORY_WINDOW_MS = 60 * 60 * 1000
CIRCUIT_BREAKER_THRESHOLD = 5
CIRCUIT_BREAKER_RESET_MS = 30_000

# --- Confidence Scoring Configuration ---
# The additive confidence formulas are heuristics with tuned constants.
# scoring.yaml, shipped inside the package, overrides any of the defaults below.
SCORING_CONFIG_FILE = Path(__file__).parent / "scoring.yaml"

DEFAULT_SCORING = {
    'research-notes': {
        'base': 40,
        'per_citation': 5, 'citation_cap': 30,
        'per_quote': 3, 'quote_cap': 20,
        'per_topic': 3, 'topic_cap': 15,
        'academic_entry_bonus': 10,
        'academic_entry_min_chars': 100,
    },
    'meeting-notes': {
        'base': 40,
        'per_attendee': 5, 'attendee_cap': 20,
        'per_action_item': 5, 'action_item_cap': 20,
        'per_decision': 5, 'decision_cap': 10,
        'per_agenda_item': 2, 'agenda_cap': 10,
    },
    'task-lists': {
        'base': 50,
        'volume_bonus': 20,
        'priority_bonus': 15,
        'due_date_bonus': 10,
        'category_bonus': 15,
        'volume_min_tasks': 3,
    },
    'shopping-lists': {
        'base': 60,
        'categorized_weight': 25,
        'quantity_weight': 10,
        'volume_bonus': 5,
        'volume_min_items': 5,
    },
    'journal-notes': {
        'base': 50,
        'timestamp_weight': 20,
        'per_insight': 3, 'insight_cap': 15,
        'mood_weight': 10,
        'paragraph_bonus': 5,
    },
    'study-notes': {
        'base': 50,
        'per_outline_item': 3, 'outline_cap': 20,
        'per_definition': 2, 'definition_cap': 15,
        'per_qa_pair': 1, 'qa_cap': 15,
        'hierarchy_bonus': 10,
    },
}

SCORING_CONFIGS = {}


def load_scoring_configs():
    """Loads confidence scoring overrides from the packaged scoring.yaml."""
    global SCORING_CONFIGS
    merged = copy.deepcopy(DEFAULT_SCORING)
    try:
        with open(SCORING_CONFIG_FILE, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        for format_name, overrides in (data.get('scoring') or {}).items():
            merged.setdefault(format_name, {}).update(overrides or {})
        if DEBUG_MODE:
            from notesmith.logging_config import debug_log
            debug_log(f"[Config] Loaded scoring overrides for {len(data.get('scoring') or {})} formats from {SCORING_CONFIG_FILE}")
    except FileNotFoundError:
        if DEBUG_MODE:
            from notesmith.logging_config import debug_log
            debug_log(f"[Config] Scoring config not found at {SCORING_CONFIG_FILE}. Using built-in values.")
    except (yaml.YAMLError, AttributeError, TypeError) as e:
        from notesmith.logging_config import debug_log
        debug_log(f"[Config] ERROR: Failed to parse scoring config file: {e}")
        merged = copy.deepcopy(DEFAULT_SCORING)
    SCORING_CONFIGS = merged


def get_scoring_config(format_name: str) -> dict:
    """
    Returns the confidence scoring constants for a format.

    Args:
        format_name: Format identifier (e.g., 'research-notes').

    Returns:
        A dictionary of scoring constants. Unknown formats get an empty dict.
    """
    if not SCORING_CONFIGS:
        load_scoring_configs()
    return dict(SCORING_CONFIGS.get(format_name, {}))


# Load configs on module import
load_scoring_configs()
# --- End Confidence Scoring Configuration ---
