# engine.py
# Public, side-effect-free entry points of the rhythm engine.
#
# Every function takes a GameState and returns a new one. Time enters only
# through elapsed_ms and the injected clock; randomness only through rng.
# Work the host must do (play a clip, play a fart) is queued on
# GameState.cues and collected with drain_cues.

import logging
import random
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from config import Clock, monotonic_ms
from dialogue import (
    advance_pointers,
    current_markers,
    feedback_variant,
    index_metadata,
    is_complete,
    metadata_key,
    normalize_variant,
)
from farts import apply_fart_result, resolve, trigger_terrible_fart
from opportunities import generate_fart_opportunities, mark_pressed, match_opportunity, retire, update_fart_opportunities
from questions import select_answer as _select_answer
from questions import show_question, update_question_state
from schema import FART_TYPES, Cue, FartResult, GameState, Level, ScreenEffects
from scoring import check_completion, final_score, grow_pressure

logger = logging.getLogger(__name__)

MetadataInput = Mapping[Union[str, Tuple[Any, ...]], Sequence[Any]]

__all__ = [
    "initialize",
    "start",
    "pause",
    "resume",
    "tick",
    "resolve_key_press",
    "select_answer",
    "finish_clip",
    "retire_opportunity",
    "drain_cues",
    "final_score",
    "reset",
]


def _normalise_keys(metadata: MetadataInput) -> dict:
    out = {}
    for key, marks in metadata.items():
        if isinstance(key, tuple):
            level_id, dialogue_index, speaker_id = key[:3]
            variant = key[3] if len(key) > 3 else None
            key = metadata_key(level_id, int(dialogue_index), speaker_id, normalize_variant(variant))
        out[key] = marks
    return out


def initialize(
    level: Union[Level, dict],
    metadata: Optional[MetadataInput] = None,
    rng: Optional[random.Random] = None,
) -> GameState:
    """Fresh, not-yet-playing state with every opportunity of the level generated."""
    if not isinstance(level, Level):
        level = Level.model_validate(level)
    marks = index_metadata(_normalise_keys(metadata or {}))
    return GameState(
        script=level,
        level=level,
        metadata=marks,
        fart_opportunities=generate_fart_opportunities(level, marks, rng),
    )


def _enter_dialogue(state: GameState, index: int, clock: Clock, rng: Optional[random.Random]) -> GameState:
    state = state.model_copy(
        update={
            "current_dialogue_index": index,
            "phase": "dialogue",
            "playback_time": 0.0,
            "current_word_index": -1,
            "current_viseme_index": -1,
            "last_fart_result": None,
            "stagger_ms": 0.0,
            # question hints end with the answer; only shame blur carries over
            "screen_effects": ScreenEffects(blur_effect=state.shame > 70),
        }
    )
    over, victory = check_completion(state, index)
    if over:
        if victory:
            logger.info("level %s survived with shame %.0f", state.level.id, state.shame)
        return state.model_copy(update={"is_game_over": True, "victory": victory, "current_question": None})

    item = state.level.dialogues[index]
    if item.role == "question":
        return show_question(state.model_copy(update={"feedback_correct": None}), clock, rng)

    if item.role == "feedback":
        entry = None
        if state.feedback_correct is not None:
            entry = next((f for f in item.feedback if f.correct == state.feedback_correct), None)
        if entry is None:
            logger.debug("no feedback to give at dialogue %d, skipping", index)
            return _enter_dialogue(state, index + 1, clock, rng)
        dialogues = list(state.level.dialogues)
        dialogues[index] = item.model_copy(update={"text": entry.text})
        key = metadata_key(state.level.id, index, item.speaker, feedback_variant(state.feedback_correct))
        return state.model_copy(
            update={
                "level": state.level.model_copy(update={"dialogues": dialogues}),
                "phase": "feedback",
                "cues": list(state.cues) + [Cue(kind="feedback", dialogue_index=index, metadata_key=key)],
            }
        )

    key = metadata_key(state.level.id, index, item.speaker)
    return state.model_copy(
        update={
            "current_question": None,
            "feedback_correct": None,
            "cues": list(state.cues) + [Cue(kind="dialogue", dialogue_index=index, metadata_key=key)],
        }
    )


def _complete_current(state: GameState, clock: Clock, rng: Optional[random.Random]) -> GameState:
    if state.phase == "question":
        return state
    item = state.current_dialogue
    if state.phase == "dialogue" and item is not None and item.has_answers:
        return show_question(state, clock, rng)
    return _enter_dialogue(state, state.current_dialogue_index + 1, clock, rng)


def start(state: GameState, clock: Clock = monotonic_ms, rng: Optional[random.Random] = None) -> GameState:
    """Begin play at the first dialogue."""
    if state.is_playing or state.is_game_over:
        return state
    return _enter_dialogue(state.model_copy(update={"is_playing": True}), state.current_dialogue_index, clock, rng)


def pause(state: GameState) -> GameState:
    if not state.is_playing or state.is_game_over:
        return state
    return state.model_copy(update={"is_paused": True})


def resume(state: GameState) -> GameState:
    return state.model_copy(update={"is_paused": False})


def tick(
    state: GameState,
    elapsed_ms: float,
    clock: Clock = monotonic_ms,
    rng: Optional[random.Random] = None,
) -> GameState:
    """Advance the game by one frame."""
    if not state.is_playing or state.is_game_over or state.is_paused:
        return state

    if state.showing_question:
        return update_question_state(state, clock)

    elapsed = max(0.0, elapsed_ms)
    pressure = grow_pressure(state, elapsed)
    if pressure >= 100 and state.last_fart_result is None:
        return trigger_terrible_fart(state, pressure, rng)

    stagger = state.stagger_ms
    played = elapsed
    if stagger > 0:
        used = min(stagger, elapsed)
        stagger -= used
        played -= used

    state = state.model_copy(update={"pressure": pressure, "stagger_ms": stagger})

    playback = state.playback_time + played
    markers = current_markers(state)
    word, viseme = advance_pointers(markers, playback, state.current_word_index, state.current_viseme_index)
    state = state.model_copy(
        update={"playback_time": playback, "current_word_index": word, "current_viseme_index": viseme}
    )

    if is_complete(markers, playback):
        return _complete_current(state, clock, rng)

    return state.model_copy(update={"fart_opportunities": update_fart_opportunities(state, playback)})


def resolve_key_press(state: GameState, key: str, now: Optional[float] = None) -> GameState:
    """Score a key press against the current dialogue's open windows.

    ``now`` is dialogue-relative; it defaults to the engine's own playback clock.
    A press that matches nothing still farts, badly.
    """
    if not state.is_playing or state.is_game_over or state.is_paused or state.showing_question:
        return state
    fart_type = (key or "").lower()
    if fart_type not in FART_TYPES:
        return state

    now = state.playback_time if now is None else now
    opportunity = match_opportunity(state, fart_type)
    result = resolve(fart_type, opportunity, now, state.rules.precision_window_ms, state.rules.game_speed)
    if result is not None:
        state = state.model_copy(
            update={"fart_opportunities": mark_pressed(state.fart_opportunities, opportunity.id, now, result.type)}
        )
    else:
        result = FartResult(type="bad", fart_type=fart_type, timestamp=now, word_index=state.current_word_index)
    return apply_fart_result(state, result)


def select_answer(state: GameState, answer_index: int) -> GameState:
    if not state.is_playing or state.is_game_over:
        return state
    return _select_answer(state, answer_index)


def finish_clip(
    state: GameState,
    dialogue_index: int,
    clock: Clock = monotonic_ms,
    rng: Optional[random.Random] = None,
) -> GameState:
    """Audio collaborator reports that the clip for ``dialogue_index`` ended."""
    if not state.is_playing or state.is_game_over:
        return state
    if dialogue_index != state.current_dialogue_index:
        logger.debug("ignoring stale clip end for dialogue %d", dialogue_index)
        return state
    return _complete_current(state, clock, rng)


def retire_opportunity(state: GameState, opportunity_id: int) -> GameState:
    """Close a pressed window once its success animation has finished."""
    return state.model_copy(update={"fart_opportunities": retire(state.fart_opportunities, opportunity_id)})


def drain_cues(state: GameState) -> Tuple[GameState, List[Cue]]:
    if not state.cues:
        return state, []
    return state.model_copy(update={"cues": []}), list(state.cues)


def reset(
    state: GameState,
    clock: Clock = monotonic_ms,
    rng: Optional[random.Random] = None,
) -> GameState:
    """Restart the level from scratch, answers and meters included."""
    fresh = initialize(state.script, state.metadata, rng)
    return start(fresh.model_copy(update={"screen_effects": ScreenEffects()}), clock, rng)
