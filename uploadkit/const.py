"""Constants for uploadkit."""

import os
from datetime import timedelta
from pathlib import Path

API_URL = os.getenv("UPK_API_URL", "http://localhost:8080")

# Fixed chunk size, not runtime-configurable (4 MiB)
CHUNK_SIZE = 4 * 1024 * 1024

# Ledger chunk entries older than this are garbage-collected
LEDGER_TTL = timedelta(hours=24)

# Simulated inter-chunk delay, per session mode
REMOTE_CHUNK_DELAY_SECONDS = 0.1
LOCAL_CHUNK_DELAY_SECONDS = 0.05

REQUEST_TIMEOUT_SECONDS = 30.0

DEFAULT_USER_ID = "default-user"
DEFAULT_MIME_TYPE = "application/octet-stream"

# Identifiers synthesized on the client carry this prefix so they never
# collide with identifiers issued by the upload service.
LOCAL_FILE_ID_PREFIX = "local-"

HTTP_NOT_IMPLEMENTED = 501

CONFIG_DIR = Path.home() / ".uploadkit"
CONFIG_FILE = "config.yaml"
CONFIG_ENCODING = "utf-8"
DB_FILE = "state.db"

INIT_UPLOAD_ENDPOINT = "/v1/init-upload"
UPLOAD_CHUNK_ENDPOINT = "/v1/upload-chunk"
FILES_ENDPOINT = "/v1/files"
UPLOADS_ENDPOINT = "/v1/uploads"
