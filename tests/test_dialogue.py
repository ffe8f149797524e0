from dialogue import (
    advance_pointers,
    completion_time,
    fallback_markers,
    group_by_word,
    metadata_key,
    normalize_markers,
)
from schema import Viseme


def test_metadata_keys():
    assert metadata_key("level1", 3, "boss") == "level1-3-boss"
    assert metadata_key("level1", 3, "me", "answer-1") == "level1-3-me-answer-1"
    assert metadata_key("level1", 4, "boss", "feedback-incorrect") == "level1-4-boss-feedback-incorrect"


def test_normalize_fills_gaps_and_orders():
    raw = [
        Viseme(time=0, type="sentence", value="hi there"),
        Viseme(time=None, type="word", value="hi"),
        Viseme(time=None, type="viseme", value="sil"),
        Viseme(time=300, type="word", value="there"),
        Viseme(time=250, type="phoneme", value="th"),
    ]
    out = normalize_markers(raw)

    assert [m.type for m in out] == ["word", "viseme", "word", "viseme"]
    assert [m.time for m in out] == [0, 100, 300, 300]


def test_fallback_spacing_splits_text():
    out = fallback_markers("  Let's  circle back ")
    assert [(m.time, m.value) for m in out] == [(0, "Let's"), (500, "circle"), (1000, "back")]
    assert fallback_markers(None) == []


def test_group_by_word_drops_leading_phonemes():
    marks = [
        Viseme(time=0, type="viseme", value="p"),
        Viseme(time=10, type="word", value="go"),
        Viseme(time=20, type="viseme", value="g"),
        Viseme(time=40, type="word", value="now"),
    ]
    groups = group_by_word(marks)
    assert [w.value for w, _ in groups] == ["go", "now"]
    assert [i for i, _ in groups[0][1]] == [1]
    assert groups[1][1] == []


def test_pointers_never_move_back():
    marks = [Viseme(time=0, type="word"), Viseme(time=100, type="viseme", value="t")]
    assert advance_pointers(marks, 150, -1, -1) == (0, 0)
    assert advance_pointers(marks, 150, 4, 7) == (4, 7)
    assert advance_pointers(marks, -10, -1, -1) == (-1, -1)


def test_completion_time_has_trailing_buffer():
    assert completion_time([Viseme(time=2300, type="word")]) == 3300
    assert completion_time([]) == 1000
