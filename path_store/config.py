"""Configuration settings for the path store server."""
import os

# Database
DATABASE_PATH = os.getenv("PATH_STORE_DATABASE", "database.sqlite")
POOL_SIZE = int(os.getenv("PATH_STORE_POOL_SIZE", "5"))
BUSY_TIMEOUT_SECONDS = float(os.getenv("PATH_STORE_BUSY_TIMEOUT", "5.0"))

# Streaming
CHUNK_SIZE = 8192  # 8KB chunks

# SQLite's default SQLITE_MAX_LENGTH; larger blobs cannot be allocated
MAX_CONTENT_LENGTH = int(os.getenv("PATH_STORE_MAX_CONTENT_LENGTH", "1000000000"))

# Entries older than this get their accessed_at re-stamped on read
STALE_AFTER_SECONDS = 60

# Path and header defaults
DEFAULT_DOCUMENT = "index.html"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Server
HOST = os.getenv("PATH_STORE_HOST", "0.0.0.0")
PORT = int(os.getenv("PATH_STORE_PORT", "8080"))

# Logging
LOG_DIR = os.getenv("PATH_STORE_LOG_DIR", "logs")
LOG_LEVEL = os.getenv("PATH_STORE_LOG_LEVEL", "DEBUG")
