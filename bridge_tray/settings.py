"""
This module contains the configuration settings for the Bridge Tray host.
It defines paths, sidecar launch settings, health polling timings and logging
configuration. Values marked in MODIFIABLE_SETTINGS can be overridden at
runtime through the console 'config' command.
"""

import os
import shlex
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
BASE_DIR = pathlib.Path(__file__).resolve().parent.parent  # Project Root
BIN_DIR = BASE_DIR / "bin"
LOGS_DIR = BASE_DIR / "logs"
ICONS_DIR = BASE_DIR / "icons"

#* --- Application File Paths ---
LOG_DB_PATH = LOGS_DIR / "app_logs.db"
OVERRIDES_JSON_PATH = BIN_DIR / "overrides.json"

#* --- App Identity ---
APP_NAME = os.getenv("APP_NAME", "Bridge to Fig")
HOST_PROCESS_TITLE = f"{APP_NAME} - Host"

#* --- Sidecar (Worker) Settings ---
# The bundled worker executable. On Windows the '.exe' suffix is added automatically.
SIDECAR_NAME = os.getenv("SIDECAR_NAME", "bridge-server")
SIDECAR_PATH = pathlib.Path(os.getenv("SIDECAR_PATH", str(BIN_DIR / SIDECAR_NAME)))
SIDECAR_ARGS = shlex.split(os.getenv("SIDECAR_ARGS", ""))
SIDECAR_PORT = int(os.getenv("SIDECAR_PORT", "4001"))

#* --- Health Polling ---
HEALTH_URL = os.getenv("HEALTH_URL", f"http://localhost:{SIDECAR_PORT}/health")
HEALTH_POLL_INTERVAL = 3   # seconds
HEALTH_CHECK_TIMEOUT = 2   # seconds, must stay below HEALTH_POLL_INTERVAL

#* --- Shutdown Settings ---
GRACEFUL_SHUTDOWN_TIMEOUT = 5  # seconds before force-killing
HANDLE_LOCK_TIMEOUT = 2        # seconds
KILL_DESCENDANTS_RECURSIVELY = False

#* --- Tray Presentation ---
TRAY_ICON_CONNECTED = "tray-connected-32x32.png"
TRAY_ICON_WAITING = "tray-waiting-32x32.png"
TRAY_ICON_STOPPED = "tray-stopped-32x32.png"

#* --- Application variables ---
VERBOSE_LOGGING = os.getenv("VERBOSE_LOGGING", "False").lower() in ('true', '1', 't')

#* --- MODIFIABLE SETTINGS (Changeable at runtime via 'config' command) ---
MODIFIABLE_SETTINGS = {
    # Health polling
    "HEALTH_POLL_INTERVAL", "HEALTH_CHECK_TIMEOUT",
    # Shutdown
    "GRACEFUL_SHUTDOWN_TIMEOUT", "KILL_DESCENDANTS_RECURSIVELY",
    # Logging
    "LOG_BUFFER_SIZE", "LOG_BUFFER_FLUSH_INTERVAL",
    "MAX_LOG_DB_SIZE_MB", "LOG_DB_KEEP_RECORDS", "LOG_DB_SIZE_CHECK_INTERVAL_SECONDS", "LOG_HISTORY_COUNT",
}

#* --- Default Values for Modifiable Logging Settings ---
LOG_BUFFER_SIZE = 100
LOG_BUFFER_FLUSH_INTERVAL = 10
MAX_LOG_DB_SIZE_MB = 50
LOG_DB_KEEP_RECORDS = 20000 # newest records kept when the size limit is hit
LOG_DB_SIZE_CHECK_INTERVAL_SECONDS = 12 * 3600 # 12 hours
LOG_HISTORY_COUNT = 50
