"""
Constants
Centralised storage for run statuses, conclusions, watch states and commit messages.
"""
RUN_STATUS_COMPLETED = "completed"

CONCLUSION_SUCCESS = "success"
CONCLUSION_FAILURE = "failure"

STATE_PENDING = "pending"
STATE_SUCCEEDED = "succeeded"
STATE_FAILED = "failed"
STATE_OTHER_CONCLUSION = "other_conclusion"
STATE_TIMED_OUT = "timed_out"
STATE_CANCELLED = "cancelled"

TERMINAL_STATES = frozenset({
    STATE_SUCCEEDED,
    STATE_FAILED,
    STATE_OTHER_CONCLUSION,
    STATE_TIMED_OUT,
    STATE_CANCELLED,
})

INITIAL_COMMIT_MESSAGE = "Initial commit: Convert website to Android app"
UPDATE_COMMIT_TEMPLATE = "Update: Version {version} - App update with latest changes"
UPDATE_PAYLOAD_TEMPLATE = "app-update-v{version}"
