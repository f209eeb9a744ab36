"""
constants.py
- Project-wide constants shared across logic and runner scripts.
- Includes label names, bootstrap step names, exit codes, and retry defaults.
"""

# --- Container Labels ---
LABEL_PREFIX = "homarr."
ENABLE_LABEL = "homarr.enable"
COMPOSE_SERVICE_LABEL = "com.docker.compose.service"
TRUTHY_VALUES = {"true", "1", "yes", "on"}

# --- Bootstrap Steps (in evaluation order) ---
STEP_ROTATE = "rotate"
STEP_REVOKE_BOOTSTRAP = "revoke_bootstrap"
STEP_PROBE = "probe"
STEP_ONBOARD = "onboard"
STEP_SETUP_BOARD = "setup_board"
STEP_SYNC_CREDENTIALS = "sync_credentials"
STEP_COMPLETE = "complete"
STEP_DONE = "done"

MAX_SETUP_ITERATIONS = 12

# --- Homarr Onboarding ---
ONBOARDING_STEPS = ["start", "import", "user", "settings", "finish"]
ONBOARDING_FINISHED = "finish"
MAX_ONBOARDING_STEPS = 10

# Tile id reserved for the Cockpit app created during board setup
COCKPIT_APP_ID = "cockpit"

# --- Retry Timing Defaults ---
DEFAULT_RETRY_ATTEMPTS = 5
DEFAULT_RETRY_BACKOFF = 1.0  # seconds, exponential multiplier
DEFAULT_REQUEST_TIMEOUT = 10  # seconds
DOCKER_LIST_ATTEMPTS = 3
TRANSIENT_HTTP_STATUSES = {502, 503, 504}

# --- Process Exit Codes ---
EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2

STATE_VERSION = "1.0"
STATE_FILE_MODE = 0o600
