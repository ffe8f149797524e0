# main.py
# Headless autoplay: runs a level through the engine with a simulated player
# and prints the outcome as JSON. No audio, no screen; clips are assumed to
# end when their speech marks do.

import json
import logging
import os
import random
import sys
from typing import Optional

from config import LEVEL_PATH, METADATA_PATH, RNG_SEED, ManualClock, configure_logging
from loader import LevelLoadError, load_level, load_metadata
from schema import GameState
from session import Session

logger = logging.getLogger("autoplay")

# -----------------------------
# Config
# -----------------------------
FRAME_MS = float(os.getenv("AUTOPLAY_FRAME_MS", "16.67"))
BOT_JITTER_MS = float(os.getenv("AUTOPLAY_JITTER_MS", "80"))
BOT_ACCURACY = float(os.getenv("AUTOPLAY_ACCURACY", "0.7"))
BOT_THINK_MS = float(os.getenv("AUTOPLAY_THINK_MS", "1500"))
MAX_FRAMES = int(os.getenv("AUTOPLAY_MAX_FRAMES", "200000"))


# -----------------------------
# Simulated player
# -----------------------------
class Bot:
    """Presses each open key near its mark, with human-ish jitter, and answers questions."""

    def __init__(self, rng: random.Random, jitter_ms: float = BOT_JITTER_MS, accuracy: float = BOT_ACCURACY):
        self.rng = rng
        self.jitter_ms = jitter_ms
        self.accuracy = accuracy
        self._planned = {}
        self._pressed_at = {}

    def key_to_press(self, state: GameState) -> Optional[str]:
        for opp in state.fart_opportunities:
            if opp.dialogue_index != state.current_dialogue_index or not opp.active or opp.handled or opp.pressed:
                continue
            mark = opp.time / state.rules.game_speed
            at = self._planned.setdefault(opp.id, mark + self.rng.gauss(0, self.jitter_ms))
            if state.playback_time >= at:
                return opp.type
        return None

    def answer_for(self, state: GameState, waited_ms: float) -> Optional[int]:
        question = state.current_question
        if question is None or waited_ms < BOT_THINK_MS:
            return None
        correct = [i for i, a in enumerate(question.answers) if a.correct]
        wrong = [i for i, a in enumerate(question.answers) if not a.correct]
        if correct and (self.rng.random() < self.accuracy or not wrong):
            return correct[0]
        return wrong[0] if wrong else 0

    def expired(self, state: GameState, float_ms: float):
        """Pressed windows whose float-away animation is over."""
        done = []
        for opp in state.fart_opportunities:
            if opp.pressed and not opp.handled:
                since = self._pressed_at.setdefault(opp.id, 0.0)
                if since >= float_ms:
                    done.append(opp.id)
                self._pressed_at[opp.id] = since + FRAME_MS
        return done


# -----------------------------
# Run
# -----------------------------
def run(level_path: str = LEVEL_PATH, metadata_path: str = METADATA_PATH, seed: Optional[int] = RNG_SEED) -> dict:
    level = load_level(level_path)
    metadata = load_metadata(metadata_path) if os.path.exists(metadata_path) else {}
    clock = ManualClock()
    session = Session(level, metadata, clock=clock, seed=seed)
    bot = Bot(random.Random(seed))

    session.start()
    question_since = None
    frames = 0
    while not session.state.is_game_over and frames < MAX_FRAMES:
        frames += 1
        clock.advance(FRAME_MS)
        state = session.tick(FRAME_MS)

        for cue in session.cues():
            if cue.kind == "fart":
                logger.info("%s fart (%s)", cue.tier, cue.fart_type)
            else:
                logger.debug("play %s clip %s", cue.kind, cue.metadata_key)

        if state.showing_question:
            question_since = question_since if question_since is not None else clock()
            choice = bot.answer_for(state, clock() - question_since)
            if choice is not None:
                session.answer(choice)
                question_since = None
            continue
        question_since = None

        key = bot.key_to_press(state)
        if key:
            session.press(key)
        for opp_id in bot.expired(session.state, state.rules.letter_float_duration_ms):
            session.retire(opp_id)

    if frames >= MAX_FRAMES:
        logger.warning("gave up after %d frames", frames)
    return session.summary()


if __name__ == "__main__":
    configure_logging()
    try:
        print(json.dumps(run(), indent=2))
    except LevelLoadError as e:
        sys.stderr.write(f"[autoplay] FATAL: {e}\n")
        sys.exit(1)
