"""Engine tunables: counts, time limits, snapshot cadence. No UI."""
# Scoring: correct +1, incorrect 0, unanswered not counted
# Percentage = round(correct / attempted * 100), half-up

DEFAULT_COUNT = 25
COUNT_OPTIONS = (10, 25, 50)
TIME_LIMIT_OPTIONS_MINUTES = (30, 45, 60, 90, 120)
DEFAULT_TIME_LIMIT_MINUTES = 60

OPTION_LETTERS = "ABCDE"
MIN_OPTIONS = 2
MAX_OPTIONS = 5

SNAPSHOT_INTERVAL_SEC = 5
LOAD_FAILURE_REDIRECT_SEC = 2
DEFAULT_TOPIC = "General"
ALL_AREAS = "All areas"
