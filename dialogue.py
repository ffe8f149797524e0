# dialogue.py
# Speech-mark lookup and playback bookkeeping for the current dialogue item.

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from config import FALLBACK_WORD_MS, MARKER_GAP_MS, TRAILING_BUFFER_MS
from schema import DialogueItem, GameState, Level, Viseme

logger = logging.getLogger(__name__)

PLAYABLE_TYPES = {"word", "viseme"}


def metadata_key(level_id: str, dialogue_index: int, speaker_id: str, variant: Optional[str] = None) -> str:
    """Build the lookup key for one utterance, e.g. ``level1-3-boss-feedback-correct``."""
    key = f"{level_id}-{dialogue_index}-{speaker_id}"
    return f"{key}-{variant}" if variant else key


def answer_variant(answer_index: int) -> str:
    return f"answer-{answer_index}"


def feedback_variant(correct: bool) -> str:
    return "feedback-correct" if correct else "feedback-incorrect"


def normalize_variant(variant: Optional[str]) -> Optional[str]:
    """Map ``none`` to no variant and ``answer#i`` to ``answer-i``."""
    if not variant or variant == "none":
        return None
    if variant.startswith("answer#"):
        return answer_variant(int(variant[len("answer#"):]))
    return variant


def answer_speaker(level: Level, item: DialogueItem) -> str:
    """Answers are voiced by the player, whoever the item's speaker is."""
    return level.player_id or item.speaker


def normalize_markers(markers: Sequence[Viseme]) -> List[Viseme]:
    """Drop sentence/ssml marks, fill missing times and force non-decreasing order."""
    out: List[Viseme] = []
    prev: Optional[float] = None
    for m in markers:
        if m.type not in PLAYABLE_TYPES:
            continue
        t = m.time
        if t is None:
            t = 0.0 if prev is None else prev + MARKER_GAP_MS
        elif prev is not None and t < prev:
            t = prev
        if t != m.time:
            m = m.model_copy(update={"time": float(t)})
        out.append(m)
        prev = t
    return out


def fallback_markers(text: Optional[str]) -> List[Viseme]:
    words = (text or "").split()
    return [Viseme(time=i * FALLBACK_WORD_MS, type="word", value=w) for i, w in enumerate(words)]


def group_by_word(markers: Sequence[Viseme]) -> List[Tuple[Viseme, List[Tuple[int, Viseme]]]]:
    """Pair every word mark with the phonemes that follow it.

    Phonemes are returned with their ordinal among all phoneme marks of the
    utterance; phonemes before the first word are dropped.
    """
    groups: List[Tuple[Viseme, List[Tuple[int, Viseme]]]] = []
    ordinal = 0
    for m in markers:
        if m.type == "word":
            groups.append((m, []))
        elif m.type == "viseme":
            if groups:
                groups[-1][1].append((ordinal, m))
            ordinal += 1
    return groups


def current_variant(state: GameState) -> Optional[str]:
    if state.phase == "answer" and state.current_question is not None:
        selected = state.current_question.selected_answer
        if selected is not None:
            return answer_variant(state.current_question.answers[selected].original_index)
    if state.phase == "feedback":
        return feedback_variant(bool(state.feedback_correct))
    return None


def current_metadata_key(state: GameState) -> Optional[str]:
    item = state.current_dialogue
    if item is None:
        return None
    variant = current_variant(state)
    speaker = answer_speaker(state.level, item) if state.phase == "answer" else item.speaker
    return metadata_key(state.level.id, state.current_dialogue_index, speaker, variant)


def current_markers(state: GameState) -> List[Viseme]:
    """Markers for whatever is being spoken now, falling back to even word spacing."""
    item = state.current_dialogue
    if item is None:
        return []
    if state.phase == "answer" and (state.current_question is None or state.current_question.selected_answer is None):
        # dismissed question: nothing is said
        return []
    key = current_metadata_key(state)
    markers = normalize_markers(state.metadata.get(key, [])) if key else []
    if markers:
        return markers
    if item.text:
        logger.debug("no speech marks for %s, spacing %d words evenly", key, len(item.text.split()))
    return fallback_markers(item.text)


def advance_pointers(
    markers: Sequence[Viseme], playback_time: float, word_index: int, viseme_index: int
) -> Tuple[int, int]:
    """Highest word/phoneme index already reached; never moves backwards."""
    new_word, new_viseme = word_index, viseme_index
    w = v = -1
    for m in markers:
        if m.time is None or m.time > playback_time:
            break
        if m.type == "word":
            w += 1
            new_word = max(new_word, w)
        elif m.type == "viseme":
            v += 1
            new_viseme = max(new_viseme, v)
    return new_word, new_viseme


def completion_time(markers: Sequence[Viseme]) -> float:
    last = markers[-1].time if markers else None
    return (last or 0.0) + TRAILING_BUFFER_MS


def is_complete(markers: Sequence[Viseme], playback_time: float) -> bool:
    return playback_time >= completion_time(markers)


def index_metadata(raw: Dict[str, Sequence[dict]]) -> Dict[str, List[Viseme]]:
    """Validate a raw ``key -> [mark, ...]`` mapping into Viseme lists."""
    return {key: [m if isinstance(m, Viseme) else Viseme.model_validate(m) for m in marks] for key, marks in raw.items()}
