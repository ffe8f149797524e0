# session.py
import logging
import random

from typing import List, Optional

import engine
from config import Clock, monotonic_ms
from schema import Cue, GameState, Level

logger = logging.getLogger(__name__)


class Session:
    """One player's run through a level.

    Owns the current GameState plus the clock and random source the pure engine
    functions are fed with, so a frame loop only has to forward events.
    """

    def __init__(self, level: Level, metadata: dict, clock: Clock = monotonic_ms, seed: Optional[int] = None):
        self.clock = clock
        self.rng = random.Random(seed)
        self.state: GameState = engine.initialize(level, metadata, self.rng)

    def start(self) -> GameState:
        self.state = engine.start(self.state, self.clock, self.rng)
        return self.state

    def tick(self, elapsed_ms: float) -> GameState:
        self.state = engine.tick(self.state, elapsed_ms, self.clock, self.rng)
        return self.state

    def press(self, key: str, now: Optional[float] = None) -> GameState:
        self.state = engine.resolve_key_press(self.state, key, now)
        return self.state

    def answer(self, answer_index: int) -> GameState:
        self.state = engine.select_answer(self.state, answer_index)
        return self.state

    def clip_finished(self, dialogue_index: int) -> GameState:
        self.state = engine.finish_clip(self.state, dialogue_index, self.clock, self.rng)
        return self.state

    def retire(self, opportunity_id: int) -> GameState:
        self.state = engine.retire_opportunity(self.state, opportunity_id)
        return self.state

    def pause(self) -> GameState:
        self.state = engine.pause(self.state)
        return self.state

    def resume(self) -> GameState:
        self.state = engine.resume(self.state)
        return self.state

    def restart(self) -> GameState:
        logger.info("restarting level %s", self.state.level.id)
        self.state = engine.reset(self.state, self.clock, self.rng)
        return self.state

    def cues(self) -> List[Cue]:
        self.state, cues = engine.drain_cues(self.state)
        return cues

    def final_score(self) -> float:
        return engine.final_score(self.state)

    def summary(self) -> dict:
        s = self.state
        return {
            "level": s.level.id,
            "game_over": s.is_game_over,
            "victory": s.victory,
            "dialogue_index": s.current_dialogue_index,
            "pressure": round(s.pressure, 2),
            "shame": round(s.shame, 2),
            "combo": s.combo,
            "score": s.score,
            "final_score": round(self.final_score(), 2),
        }
