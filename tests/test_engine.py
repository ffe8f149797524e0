import random

import pytest
from conftest import make_level, ph, question_level, word
from pydantic import ValidationError

import engine
from schema import DialogueItem, FartResult, Rules


def test_initialize_is_idle(rng):
    state = engine.initialize(make_level(), {}, rng)
    assert not state.is_playing
    assert state.current_dialogue_index == 0
    assert state.pressure == 0 and state.shame == 0
    assert engine.tick(state, 1000) is state


def test_initialize_accepts_tuple_keys(rng):
    state = engine.initialize(make_level(), {("lvl", 0, "boss"): [word(0), ph(40, "k")]}, rng)
    assert "lvl-0-boss" in state.metadata
    assert len(state.fart_opportunities) == 1


def test_pressure_grows_with_time(play, clock, rng):
    state = play(make_level(pressure_buildup_speed=10))
    state = engine.tick(state, 1000, clock, rng)
    assert state.pressure == 10


def test_negative_elapsed_does_not_drain_pressure(play, clock, rng):
    state = play(make_level()).model_copy(update={"pressure": 30})
    assert engine.tick(state, -500, clock, rng).pressure == 30


def test_full_pressure_triggers_terrible_fart(play, clock, rng):
    state = play(make_level(pressure_buildup_speed=10)).model_copy(update={"pressure": 99})
    after = engine.tick(state, 100, clock, rng)

    assert after.last_fart_result.type == "terrible"
    assert after.shame == 30
    assert after.pressure == 95
    assert after.playback_time == state.playback_time


def test_no_second_auto_fart_in_the_same_turn(play, clock, rng):
    earlier = FartResult(type="okay", fart_type="t", timestamp=0)
    state = play(make_level(pressure_buildup_speed=10)).model_copy(
        update={"pressure": 120, "last_fart_result": earlier}
    )
    after = engine.tick(state, 100, clock, rng)

    assert after.pressure == 121
    assert after.shame == 0


def test_unmatched_press_is_a_bad_fart(play):
    state = play(make_level()).model_copy(update={"combo": 3})
    state = engine.resolve_key_press(state, "p")

    assert state.last_fart_result.type == "bad"
    assert state.combo == 0
    assert state.shame == 20


def test_matched_press_marks_the_opportunity(play, clock, rng):
    state = play(make_level(), {"lvl-0-boss": [word(0), ph(1000, "k")]})
    state = engine.tick(state, 1000, clock, rng)
    assert state.fart_opportunities[0].active

    state = engine.resolve_key_press(state, "K")
    opp = state.fart_opportunities[0]
    assert state.last_fart_result.type == "perfect"
    assert opp.pressed and opp.result_type == "perfect" and opp.pressed_time == 1000
    assert state.score == 150

    state = engine.retire_opportunity(state, 0)
    assert state.fart_opportunities[0].handled


def test_press_uses_explicit_timestamp(play, clock, rng):
    state = play(make_level(), {"lvl-0-boss": [word(0), ph(1000, "k")]})
    state = engine.tick(state, 1000, clock, rng)
    state = engine.resolve_key_press(state, "k", now=1300)
    assert state.last_fart_result.type == "okay"


def test_non_fart_keys_are_ignored(play):
    state = play(make_level())
    assert engine.resolve_key_press(state, "x") is state
    assert engine.resolve_key_press(state, "") is state


def test_pointers_follow_playback(play, clock, rng):
    state = play(make_level(), {"lvl-0-boss": [word(0), ph(100, "t"), word(500), ph(550, "k")]})
    state = engine.tick(state, 200, clock, rng)
    assert (state.current_word_index, state.current_viseme_index) == (0, 0)
    state = engine.tick(state, 400, clock, rng)
    assert (state.current_word_index, state.current_viseme_index) == (1, 1)


def test_dialogue_advances_after_trailing_buffer(play, clock, rng):
    level = make_level([DialogueItem(speaker="boss", text="a b"), DialogueItem(speaker="boss", text="c")])
    state = play(level)
    state = engine.tick(state, 1400, clock, rng)
    assert state.current_dialogue_index == 0

    state = engine.tick(state, 100, clock, rng)
    assert state.current_dialogue_index == 1
    assert state.playback_time == 0
    assert state.current_word_index == -1
    assert state.last_fart_result is None

    state, cues = engine.drain_cues(state)
    assert [(c.kind, c.metadata_key) for c in cues] == [("dialogue", "lvl-0-boss"), ("dialogue", "lvl-1-boss")]
    assert state.cues == []


def test_victory_and_final_score(play, clock, rng):
    state = play(make_level(pressure_buildup_speed=5)).model_copy(update={"shame": 40, "score": 500})
    state = engine.tick(state, 1500, clock, rng)

    assert state.is_game_over and state.victory
    assert state.pressure == 7.5
    assert engine.final_score(state) == 492.5
    assert engine.final_score(state) == engine.final_score(state)


def test_final_score_never_negative(play, clock, rng):
    state = engine.tick(play(make_level()), 1500, clock, rng)
    assert state.victory
    assert engine.final_score(state) == 0


def test_defeat_keeps_raw_score(play):
    state = play(make_level()).model_copy(update={"shame": 90, "score": 300})
    state = engine.resolve_key_press(state, "t")
    assert state.is_game_over and not state.victory
    assert engine.final_score(state) == 300


def test_stale_clip_end_is_ignored(play, clock, rng):
    level = make_level([DialogueItem(speaker="boss", text="a"), DialogueItem(speaker="boss", text="b")])
    state = play(level)
    assert engine.finish_clip(state, 5, clock, rng) is state

    state = engine.finish_clip(state, 0, clock, rng)
    assert state.current_dialogue_index == 1


def test_pause_stops_time(play, clock, rng):
    state = engine.pause(play(make_level()))
    assert engine.tick(state, 1000, clock, rng).pressure == 0
    state = engine.resume(state)
    assert engine.tick(state, 1000, clock, rng).pressure == 5


def test_bad_fart_staggers_the_speaker(play, clock, rng):
    state = play(make_level(bad_fart_pause_ms=1000))
    state = engine.resolve_key_press(state, "t")
    state = engine.tick(state, 600, clock, rng)

    assert state.playback_time == 0
    assert state.pressure == 3
    state = engine.tick(state, 600, clock, rng)
    assert state.playback_time == 200


def test_reset_restores_the_script(play, clock, rng):
    state = play(question_level())
    state = engine.tick(state, 1000, clock, rng)
    state = engine.select_answer(state, 0)
    state = engine.reset(state, clock, rng)

    assert state.is_playing and not state.is_game_over
    assert state.current_dialogue_index == 0
    assert state.phase == "dialogue"
    assert state.pressure == 0 and state.shame == 0 and state.score == 0
    assert state.level.dialogues[1].text is None


def test_invariants_over_a_session(play, clock):
    rng = random.Random(99)
    state = play(question_level(pressure_buildup_speed=40))
    last_index = 0
    for frame in range(2000):
        clock.advance(16)
        if state.showing_question and frame % 7 == 0:
            state = engine.select_answer(state, rng.randrange(3))
        elif frame % 5 == 0:
            state = engine.resolve_key_press(state, rng.choice("tpkfrzx"))
        state = engine.tick(state, 16, clock, rng)

        assert 0 <= state.shame <= 100
        assert state.pressure >= 0
        assert state.current_dialogue_index >= last_index
        last_index = state.current_dialogue_index
        if state.is_game_over:
            break
    assert state.is_game_over


def test_tuple_keys_with_variants(rng):
    marks = [word(0)]
    state = engine.initialize(
        question_level(),
        {
            ("lvl", 0, "boss", "none"): marks,
            ("lvl", 1, "me", "answer-0"): marks,
            ("lvl", 1, "me", "answer#1"): marks,
            ("lvl", 2, "boss", "feedback-correct"): marks,
        },
        rng,
    )
    assert sorted(state.metadata) == ["lvl-0-boss", "lvl-1-me-answer-0", "lvl-1-me-answer-1", "lvl-2-boss-feedback-correct"]


def test_game_speed_scales_pressure(play, clock, rng):
    state = play(make_level(pressure_buildup_speed=10, game_speed=2.0))
    state = engine.tick(state, 1000, clock, rng)
    assert state.pressure == 20


def test_game_speed_must_be_positive():
    with pytest.raises(ValidationError):
        Rules(game_speed=0)
