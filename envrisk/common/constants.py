"""Application constants."""

USER_AGENT = "envrisk/0.4 (+environmental screening; contact: configured-email)"
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
EARTH_RADIUS_MILES = 3959.0
DUPLICATE_TOLERANCE_MILES = 0.1
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "source",
    "event",
    "status",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
