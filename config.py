# config.py
# Engine constants, environment overrides and the injectable clock.
import logging
import os
import sys
import time

from typing import Callable, Optional

LOG_LEVEL = os.getenv("RHYTHM_LOG_LEVEL", "INFO").upper()

# Playback keeps running this long past the last marker before a dialogue completes.
TRAILING_BUFFER_MS = float(os.getenv("RHYTHM_TRAILING_BUFFER_MS", "1000"))
# Word spacing used when an utterance has no speech marks.
FALLBACK_WORD_MS = float(os.getenv("RHYTHM_FALLBACK_WORD_MS", "500"))
# Substituted for a marker that arrives without a timestamp: previous + gap.
MARKER_GAP_MS = float(os.getenv("RHYTHM_MARKER_GAP_MS", "100"))

DEFAULT_QUESTION_TIME_LIMIT_MS = 10000.0

# Question and feedback interludes have no speech marks; they get placeholders.
SYNTH_OPPORTUNITY_COUNT = 3
SYNTH_OPPORTUNITY_START_MS = 500.0
SYNTH_OPPORTUNITY_STEP_MS = 1500.0

COMBO_BONUS_CAP = 5
COMBO_BONUS_STEP = 5

RNG_SEED: Optional[int] = int(os.environ["RHYTHM_SEED"]) if os.getenv("RHYTHM_SEED") else None
LEVEL_PATH = os.getenv("LEVEL_PATH", "levels/standup.json")
METADATA_PATH = os.getenv("METADATA_PATH", "levels/standup.metadata.json")

Clock = Callable[[], float]


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class ManualClock:
    """Clock the host advances by hand; keeps question countdowns deterministic."""

    def __init__(self, start: float = 0.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once; repeated calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        root.addHandler(handler)
    root.setLevel((level or LOG_LEVEL).upper())
