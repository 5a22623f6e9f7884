"""Application constants."""

USER_AGENT = "expired-listings/2.0 (+lead-intelligence)"
DEFAULT_STATE = "TX"
INPUT_PREFIX = "expired-listings/"
COMMANDS = ("run", "serve")
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
ACK_MESSAGE = "Processing started. Check Slack for results."
BANNER = "AI Chief of Staff - Expired Listings Worker v2.0\nPOST to trigger processing."
NOT_ANALYZED_ANGLE = "Lower priority - not analyzed"
ANALYSIS_FAILED_ANGLE = "Analysis failed"
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "source_file",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
