# opportunities.py
# Builds the timed key-press windows for a level and keeps their flags current.

import logging
import random
from collections import defaultdict
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from config import SYNTH_OPPORTUNITY_COUNT, SYNTH_OPPORTUNITY_START_MS, SYNTH_OPPORTUNITY_STEP_MS
from dialogue import group_by_word, metadata_key, normalize_markers
from schema import FART_TYPES, FartOpportunity, GameState, Level, Rules, Viseme

logger = logging.getLogger(__name__)

# Many raw phoneme values collapse onto one key; vowels and silence never produce a window.
VISEME_TO_FART: Dict[str, Optional[str]] = {
    "p": "p", "k": "k", "f": "f", "t": "t", "r": "r", "z": "z",
    "T": "t", "d": "t", "D": "t", "n": "t", "th": "t",
    "g": "k", "c": "k", "q": "k", "x": "k",
    "m": "p", "w": "p", "b": "p",
    "v": "f", "ph": "f",
    "j": "z", "S": "z", "s": "z", "Z": "z", "sh": "z", "ch": "z",
    "l": "r", "R": "r", "er": "r", "ar": "r", "or": "r", "ur": "r",
    "@": None, "E": None, "O": None, "A": None, "I": None, "U": None, "sil": None,
}


def fart_type_for(viseme_value: str) -> Optional[str]:
    return VISEME_TO_FART.get(viseme_value)


def _word_budget(rules: Rules, word: Viseme) -> int:
    budget = rules.max_possible_farts_by_word
    text = (word.value or "").lower()
    if text and any(bonus.lower() in text for bonus in rules.bonus_words):
        budget *= rules.bonus_word_multiplier
    return budget


def select_visemes(visemes: Sequence[Tuple[int, Viseme]], budget: int) -> List[Tuple[int, Viseme, str]]:
    """Pick up to ``budget`` phonemes: one of each key first, then repeats, in time order."""
    valid = [(i, v, fart_type_for(v.value)) for i, v in visemes]
    valid = [c for c in valid if c[2] is not None]
    picked: List[Tuple[int, Viseme, str]] = []
    seen = set()
    for cand in valid:
        if len(picked) >= budget:
            break
        if cand[2] not in seen:
            seen.add(cand[2])
            picked.append(cand)
    for cand in valid:
        if len(picked) >= budget:
            break
        if cand not in picked:
            picked.append(cand)
    picked.sort(key=lambda c: (c[1].time or 0.0, c[0]))
    return picked


def generate_fart_opportunities(
    level: Level,
    metadata: Mapping[str, Sequence[Viseme]],
    rng: Optional[random.Random] = None,
) -> List[FartOpportunity]:
    """Compute every opportunity of the level once, at load time."""
    rng = rng or random.Random()
    out: List[FartOpportunity] = []

    for dialogue_index, item in enumerate(level.dialogues):
        if item.role in ("question", "feedback"):
            for i in range(SYNTH_OPPORTUNITY_COUNT):
                out.append(
                    FartOpportunity(
                        id=len(out),
                        dialogue_index=dialogue_index,
                        word_index=i,
                        viseme_index=i,
                        time=SYNTH_OPPORTUNITY_START_MS + i * SYNTH_OPPORTUNITY_STEP_MS,
                        type=rng.choice(FART_TYPES),
                    )
                )
            continue

        key = metadata_key(level.id, dialogue_index, item.speaker)
        markers = normalize_markers(metadata.get(key, []))
        if not markers:
            logger.info("no speech marks for %s; dialogue %d has no opportunities", key, dialogue_index)
            continue

        for word_index, (word, visemes) in enumerate(group_by_word(markers)):
            for viseme_index, viseme, fart_type in select_visemes(visemes, _word_budget(level.rules, word)):
                out.append(
                    FartOpportunity(
                        id=len(out),
                        dialogue_index=dialogue_index,
                        word_index=word_index,
                        viseme_index=viseme_index,
                        time=float(viseme.time or 0.0),
                        type=fart_type,
                    )
                )

    logger.debug("generated %d opportunities for level %s", len(out), level.id)
    return out


def window(rules: Rules, opportunity: FartOpportunity) -> Tuple[float, float]:
    speed = rules.game_speed
    at = opportunity.time / speed
    return (
        at - rules.precision_window_ms * 2.5 / speed,
        at + rules.letter_visible_duration_ms / speed,
    )


def update_fart_opportunities(state: GameState, playback_time: float) -> List[FartOpportunity]:
    """Recompute flags for the current dialogue's opportunities at ``playback_time``."""
    rules = state.rules
    current = state.current_dialogue_index
    opps = list(state.fart_opportunities)

    for idx, opp in enumerate(opps):
        if opp.dialogue_index != current or opp.handled or opp.pressed:
            continue
        start, end = window(rules, opp)
        active = start <= playback_time <= end
        handled = playback_time > end
        if active != opp.active or handled:
            opps[idx] = opp.model_copy(update={"active": active, "handled": handled})

    def live() -> List[FartOpportunity]:
        return [
            o for o in opps
            if o.dialogue_index == current and o.active and not o.handled and not o.pressed
        ]

    # One visible instance per key: the newest wins.
    by_type: Dict[str, List[FartOpportunity]] = defaultdict(list)
    for o in live():
        by_type[o.type].append(o)
    for same in by_type.values():
        if len(same) < 2:
            continue
        same.sort(key=lambda o: (o.time, o.id), reverse=True)
        for o in same[1:]:
            opps[o.id] = o.model_copy(update={"active": False, "handled": True})

    active = live()
    if len(active) > rules.max_simultaneous_letters:
        active.sort(key=lambda o: (o.time, o.id))
        for o in active[rules.max_simultaneous_letters:]:
            opps[o.id] = o.model_copy(update={"active": False})

    return opps


def match_opportunity(state: GameState, fart_type: str) -> Optional[FartOpportunity]:
    """Earliest pressable opportunity of ``fart_type`` in the current dialogue."""
    candidates = [
        o for o in state.fart_opportunities
        if o.dialogue_index == state.current_dialogue_index
        and o.active and not o.handled and not o.pressed and o.type == fart_type
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda o: (o.time, o.id))


def mark_pressed(
    opportunities: Sequence[FartOpportunity], opportunity_id: int, pressed_time: float, result_type: str
) -> List[FartOpportunity]:
    opps = list(opportunities)
    opps[opportunity_id] = opps[opportunity_id].model_copy(
        update={"pressed": True, "handled": False, "pressed_time": pressed_time, "result_type": result_type}
    )
    return opps


def retire(opportunities: Sequence[FartOpportunity], opportunity_id: int) -> List[FartOpportunity]:
    opps = list(opportunities)
    if 0 <= opportunity_id < len(opps):
        opps[opportunity_id] = opps[opportunity_id].model_copy(update={"active": False, "handled": True})
    return opps


def retire_dialogue(opportunities: Sequence[FartOpportunity], dialogue_index: int) -> List[FartOpportunity]:
    """Close every unpressed window left over from a finished stretch of speech."""
    return [
        o.model_copy(update={"active": False, "handled": True})
        if o.dialogue_index == dialogue_index and not o.pressed and not o.handled
        else o
        for o in opportunities
    ]
