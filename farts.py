# farts.py
# Timing classification of key presses and the reducer that applies their outcome.

import logging
import math
import random
from typing import Optional

from config import COMBO_BONUS_CAP, COMBO_BONUS_STEP
from schema import FART_TYPES, Cue, FartOpportunity, FartResult, GameState, Rules

logger = logging.getLogger(__name__)

PERFECT_FACTOR = 0.75
OKAY_FACTOR = 2.0


def resolve(
    key: str,
    opportunity: Optional[FartOpportunity],
    now: float,
    precision_window_ms: float,
    game_speed: float = 1.0,
) -> Optional[FartResult]:
    """Classify a press against one opportunity, or None if it does not apply.

    At game_speed s the mark falls at time / s and the window shrinks to w / s.
    """
    if opportunity is None or not opportunity.active:
        return None
    if key.lower() != opportunity.type:
        return None

    delta = abs(now - opportunity.time / game_speed)
    window_ms = precision_window_ms / game_speed
    if delta <= window_ms * PERFECT_FACTOR:
        tier = "perfect"
    elif delta <= window_ms * OKAY_FACTOR:
        tier = "okay"
    else:
        tier = "bad"
    return FartResult(type=tier, fart_type=opportunity.type, timestamp=now, word_index=opportunity.word_index)


def pressure_release(rules: Rules, tier: str) -> float:
    if tier == "missed":
        return 0.0
    table = rules.pressure_release
    if tier == "terrible":
        return table.terrible if table.terrible is not None else table.bad / 2
    return getattr(table, tier)


def shame_gain(rules: Rules, tier: str) -> float:
    if tier == "missed":
        return 0.0
    table = rules.shame_gain
    if tier == "terrible":
        return table.terrible if table.terrible is not None else math.ceil(table.bad * 1.5)
    return getattr(table, tier)


def _stagger(rules: Rules, tier: str) -> float:
    if tier == "bad":
        return rules.bad_fart_pause_ms
    if tier == "terrible":
        return rules.terrible_fart_pause_ms
    return 0.0


def apply_fart_result(state: GameState, result: FartResult) -> GameState:
    """Fold one result into the meters, combo and score."""
    if not state.is_playing or state.is_game_over:
        return state

    rules = state.rules
    tier = result.type

    combo = state.combo
    if tier == "perfect":
        combo += 1
    elif tier in ("bad", "terrible"):
        combo = 0

    release = pressure_release(rules, tier)
    if tier == "perfect":
        release += min(combo, COMBO_BONUS_CAP) * COMBO_BONUS_STEP

    pressure = max(0.0, state.pressure - release)
    shame = min(100.0, max(0.0, state.shame + shame_gain(rules, tier)))

    if tier == "perfect":
        gained = 100 + combo * 50
    elif tier == "okay":
        gained = 50
    else:
        gained = 0

    game_over = shame >= 100
    if game_over:
        logger.info("shame maxed out at dialogue %d", state.current_dialogue_index)

    cues = list(state.cues)
    if tier != "missed":
        cues.append(Cue(kind="fart", dialogue_index=state.current_dialogue_index, fart_type=result.fart_type, tier=tier))

    return state.model_copy(
        update={
            "pressure": pressure,
            "shame": shame,
            "combo": combo,
            "score": state.score + gained,
            "last_fart_result": result,
            "is_game_over": game_over,
            "victory": False if game_over else state.victory,
            "stagger_ms": max(state.stagger_ms, _stagger(rules, tier)),
            "screen_effects": state.screen_effects.model_copy(update={"blur_effect": shame > 70}),
            "cues": cues,
        }
    )


def trigger_terrible_fart(state: GameState, pressure: float, rng: Optional[random.Random] = None) -> GameState:
    """Pressure hit the ceiling: the body decides, with a random sound."""
    rng = rng or random.Random()
    result = FartResult(
        type="terrible",
        fart_type=rng.choice(FART_TYPES),
        timestamp=state.playback_time,
        word_index=state.current_word_index,
    )
    logger.debug("auto fart (%s) at %.0fms of dialogue %d", result.fart_type, state.playback_time, state.current_dialogue_index)
    return apply_fart_result(state.model_copy(update={"pressure": pressure}), result)
