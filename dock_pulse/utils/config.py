"""Application-wide constants and configuration."""

import os


# ─── Backend ────────────────────────────────────────────────────────
DOCKER_BINARY = os.getenv("DOCK_PULSE_DOCKER", "docker")
BACKEND_TIMEOUT = float(os.getenv("DOCK_PULSE_TIMEOUT", "30"))   # seconds per call

# ─── Messages & refresh ─────────────────────────────────────────────
MESSAGE_HISTORY = 200           # messages kept in the message log
MESSAGE_DISPLAY = 5             # messages shown under the list
REFRESH_INTERVAL = 2            # seconds between periodic repaints

# ─── Interaction ────────────────────────────────────────────────────
SESSION_START_TIMEOUT = 5       # seconds to wait for a modal task to start
CONFIRM_ANSWERS = ("y", "Y")
PAGER_PAGE_SIZE = 20
LOG_STREAM_MAX_LINES = 2000
LOG_REPAINT_INTERVAL = 0.25     # min seconds between repaints while logs stream in

# Terminal key name → named control signal (values of ControlKey).
KEY_BINDINGS = {
    "f1": "sort",
    "f5": "refresh",
    "ctrl+r": "remove",
    "ctrl+f": "force_remove",
    "ctrl+e": "remove_image",
    "ctrl+d": "remove_dangling",
    "ctrl+s": "scale",
    "enter": "confirm",
    "escape": "cancel",
    "backspace": "backspace",
    "up": "up",
    "down": "down",
    "pageup": "page_up",
    "pagedown": "page_down",
    "ctrl+q": "quit",
}

# Character → view (values of ViewMode).
VIEW_KEYS = {
    "1": "services",
    "2": "images",
}
DEFAULT_VIEW = os.getenv("DOCK_PULSE_VIEW", "services")

# ─── Logging ───────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("DOCK_PULSE_LOG_LEVEL", "INFO").upper()   # stderr handler level

# ─── Paths ──────────────────────────────────────────────────────────
LOG_FILE = os.getenv(
    "DOCK_PULSE_LOG_FILE",
    os.path.join(os.path.expanduser("~"), ".dock_pulse.log"),
)
