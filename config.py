# config.py
from dataclasses import dataclass

# -----------------------
# Defaults (milliseconds unless noted)
# -----------------------

SETTLE_DELAY_MS = 900      # wait after an advance click during scan
POLL_INTERVAL_MS = 250     # location poll inside the step synchronizer
STEP_TIMEOUT_MS = 9000     # upper bound on waiting for the next step
ROW_DELAY_MS = 1000        # pause between two data rows
MAX_SCAN_STEPS = 10        # steps recorded by a scan unless overridden

SCREENSHOT_DIR = "./screenshots"


@dataclass
class Timings:
    settle_ms: int = SETTLE_DELAY_MS
    poll_ms: int = POLL_INTERVAL_MS
    step_timeout_ms: int = STEP_TIMEOUT_MS
    row_delay_ms: int = ROW_DELAY_MS

    @classmethod
    def instant(cls) -> "Timings":
        """No waiting at all; used by tests and dry runs against fake documents."""
        return cls(settle_ms=0, poll_ms=1, step_timeout_ms=50, row_delay_ms=0)
