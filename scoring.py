# scoring.py
# Pressure build-up, level completion and the final score.

from typing import Tuple

from schema import GameState


def question_pending(state: GameState) -> bool:
    """The current line ends in a question that has not been answered yet."""
    item = state.current_dialogue
    return bool(item is not None and item.has_answers and state.phase == "dialogue")


def grow_pressure(state: GameState, elapsed_ms: float) -> float:
    multiplier = state.rules.question_pressure_multiplier if question_pending(state) else 1.0
    gained = (elapsed_ms * state.rules.game_speed / 1000.0) * state.rules.pressure_buildup_speed * multiplier
    return max(0.0, state.pressure + gained)


def check_completion(state: GameState, dialogue_index: int) -> Tuple[bool, bool]:
    """Return ``(is_game_over, victory)`` for the given dialogue position."""
    complete = dialogue_index >= len(state.level.dialogues)
    shamed = state.shame >= 100
    return complete or shamed, complete and not shamed


def final_score(state: GameState) -> float:
    if state.victory:
        return max(0.0, -state.pressure + state.score)
    return state.score
