"""
Application configuration and constants for SeatBook API Server.

This module centralizes environment-based configuration, resource limits,
regular expressions, seat layout constraints, polling intervals, and other
constants.

Configuration values can be overridden via environment variables.
"""

from os import environ


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "SeatBook API Server"
API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# PostgreSQL configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "postgres")

# Full URL override (used by the test suite to point at SQLite)
DATABASE_URL = environ.get(
    "DATABASE_URL",
    f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}",
)


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@seatbook.com")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "seatbook")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "seatbook-server")


# ---------------------------------------------------------------------------
# Redis configuration
# ---------------------------------------------------------------------------
REDIS_HOST = environ.get("REDIS_HOST", "localhost")
REDIS_PORT = environ.get("REDIS_PORT", "6379")
REDIS_PASSWORD = environ.get("REDIS_PASSWORD", "password")


# ---------------------------------------------------------------------------
# Catalog service (upstream seat status hints)
# ---------------------------------------------------------------------------
CATALOG_SERVICE_URL = environ.get("CATALOG_SERVICE_URL", "")  # Empty disables hints
CATALOG_SERVICE_TIMEOUT = float(environ.get("CATALOG_SERVICE_TIMEOUT", "2"))


# ---------------------------------------------------------------------------
# Resource upper limits
# ---------------------------------------------------------------------------
MAX_BUS_CAPACITY = 120  # Maximum seats a bus can declare
MAX_FLOORS = 2  # Lower deck and upper deck
MAX_BULK_SEATS = 240  # Maximum seats per bulk create/update request
MAX_SEATS_PER_ISSUE = int(environ.get("MAX_SEATS_PER_ISSUE", "20"))
MAX_ISSUE_CONCURRENCY = int(environ.get("MAX_ISSUE_CONCURRENCY", "4"))


# ---------------------------------------------------------------------------
# Seat layout constants
# ---------------------------------------------------------------------------
SEAT_NUMBER_PAD = 2  # A1 -> A01
FALLBACK_COLUMNS = 3  # Grid width used when no layout matches
DEFAULT_FLOOR_LABELS = {1: "Lower deck", 2: "Upper deck"}


# ---------------------------------------------------------------------------
# Regex constants (input validation)
# ---------------------------------------------------------------------------
REGEX_SEAT_PREFIX = r"^[a-zA-Z]{1,4}$"
REGEX_SEAT_NUMBER = r"^[a-zA-Z0-9]{1,16}$"


# ---------------------------------------------------------------------------
# Live monitoring constants
# ---------------------------------------------------------------------------
POLL_INTERVAL = float(environ.get("POLL_INTERVAL", "3"))  # (in seconds)


# ---------------------------------------------------------------------------
# Redis mutex lock constants
# ---------------------------------------------------------------------------
MUTEX_LOCK_TIMEOUT = 10  # Lock timeout (in seconds)
MUTEX_LOCK_MAX_WAIT_TIME = 60  # Max blocking wait time (in seconds)
