# questions.py
# Timed multiple-choice interludes: showing, counting down and answering.

import logging
import random
import re
from typing import Optional

from config import DEFAULT_QUESTION_TIME_LIMIT_MS, Clock
from dialogue import answer_speaker, answer_variant, metadata_key
from opportunities import retire_dialogue
from schema import Cue, GameState, QuestionAnswer, QuestionState

logger = logging.getLogger(__name__)

_TIME_LIMIT = re.compile(r"^(\d+)(m?s)$")


def parse_time_limit(time_limit: Optional[str]) -> float:
    """Convert ``"10s"`` / ``"500ms"`` to milliseconds; anything else means 10s."""
    if not time_limit:
        return DEFAULT_QUESTION_TIME_LIMIT_MS
    match = _TIME_LIMIT.match(time_limit.strip())
    if not match:
        logger.warning("unreadable question_time_limit %r, using default", time_limit)
        return DEFAULT_QUESTION_TIME_LIMIT_MS
    value = int(match.group(1))
    return float(value) if match.group(2) == "ms" else float(value * 1000)


def heartbeat_for(time_remaining: float, time_limit: float):
    ratio = time_remaining / time_limit if time_limit > 0 else 0.0
    if ratio < 0.2:
        return 80, True
    if ratio < 0.5:
        return 40, False
    return 20, False


def show_question(state: GameState, clock: Clock, rng: Optional[random.Random] = None) -> GameState:
    item = state.current_dialogue
    if item is None or not item.answers:
        return state

    rng = rng or random.Random()
    answers = [QuestionAnswer(text=a.text, correct=a.correct, original_index=i) for i, a in enumerate(item.answers)]
    rng.shuffle(answers)

    now = clock()
    limit = parse_time_limit(state.rules.question_time_limit)
    opps = state.fart_opportunities
    if item.text:
        # The spoken lead-in is over; its windows must not reopen during the answer.
        opps = retire_dialogue(opps, state.current_dialogue_index)

    logger.debug("question at dialogue %d, %d answers, %.0fms", state.current_dialogue_index, len(answers), limit)
    return state.model_copy(
        update={
            "phase": "question",
            "paused_timestamp": now,
            "current_question": QuestionState(
                answers=answers, time_limit_ms=limit, time_remaining_ms=limit, start_time=now
            ),
            "fart_opportunities": opps,
            "screen_effects": state.screen_effects.model_copy(update={"heartbeat_intensity": 20, "pulse_effect": False}),
        }
    )


def update_question_state(state: GameState, clock: Clock) -> GameState:
    """Run the countdown; when it expires, the first wrong answer is picked for the player."""
    question = state.current_question
    if question is None:
        return state

    remaining = max(0.0, question.time_limit_ms - (clock() - question.start_time))
    if remaining <= 0:
        if not question.answers:
            return dismiss_question(state)
        wrong = next((i for i, a in enumerate(question.answers) if not a.correct), 0)
        logger.info("question at dialogue %d timed out", state.current_dialogue_index)
        return select_answer(state, wrong)

    intensity, pulse = heartbeat_for(remaining, question.time_limit_ms)
    return state.model_copy(
        update={
            "current_question": question.model_copy(update={"time_remaining_ms": remaining}),
            "screen_effects": state.screen_effects.model_copy(
                update={"heartbeat_intensity": intensity, "pulse_effect": pulse}
            ),
        }
    )


def dismiss_question(state: GameState) -> GameState:
    """Drop the question with no scoring effect; the item then plays out silently."""
    return state.model_copy(
        update={
            "phase": "answer",
            "current_question": None,
            "feedback_correct": None,
            "paused_timestamp": None,
            "playback_time": 0.0,
            "current_word_index": -1,
            "current_viseme_index": -1,
        }
    )


def select_answer(state: GameState, answer_index: int) -> GameState:
    if not state.showing_question:
        logger.warning("answer %s selected with no question showing", answer_index)
        return state

    question = state.current_question
    if not 0 <= answer_index < len(question.answers):
        logger.warning(
            "invalid answer index %s for question at dialogue %d", answer_index, state.current_dialogue_index
        )
        return dismiss_question(state)

    chosen = question.answers[answer_index]
    correct = chosen.correct
    effects = state.rules.question_effects

    shame_change = effects.correct_shame_change if correct else effects.incorrect_shame_change
    shame = min(100.0, max(0.0, state.shame + shame_change))
    pressure_change = effects.correct_pressure_change if correct else effects.incorrect_pressure_change
    pressure = min(100.0, max(0.0, state.pressure + pressure_change))

    index = state.current_dialogue_index
    item = state.level.dialogues[index]
    dialogues = list(state.level.dialogues)
    dialogues[index] = item.model_copy(update={"text": chosen.text})
    level = state.level.model_copy(update={"dialogues": dialogues})

    key = metadata_key(state.level.id, index, answer_speaker(state.level, item), answer_variant(chosen.original_index))
    game_over = shame >= 100

    logger.info("dialogue %d answered %s", index, "correctly" if correct else "incorrectly")
    return state.model_copy(
        update={
            "level": level,
            "phase": "answer",
            "shame": shame,
            "pressure": pressure,
            "current_question": question.model_copy(
                update={"selected_answer": answer_index, "is_correct": correct, "time_remaining_ms": 0.0}
            ),
            "feedback_correct": correct,
            "paused_timestamp": None,
            "playback_time": 0.0,
            "current_word_index": -1,
            "current_viseme_index": -1,
            "last_fart_result": None,
            "is_game_over": state.is_game_over or game_over,
            "victory": False if game_over else state.victory,
            "screen_effects": state.screen_effects.model_copy(
                update={
                    "heartbeat_intensity": 10 if correct else effects.heartbeat_intensity,
                    "pulse_effect": not correct,
                    "blur_effect": shame > 70,
                }
            ),
            "cues": list(state.cues) + [Cue(kind="answer", dialogue_index=index, metadata_key=key)],
        }
    )
