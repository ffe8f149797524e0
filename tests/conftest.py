import random

import pytest

import engine
from config import ManualClock
from schema import Answer, DialogueItem, Level, Participant, Rules


def word(time, value="w"):
    return {"time": time, "type": "word", "value": value}


def ph(time, value):
    return {"time": time, "type": "viseme", "value": value}


def make_level(dialogues=None, **rules):
    return Level(
        id="lvl",
        title="test",
        rules=Rules(**rules),
        participants=[Participant(id="me", type="player"), Participant(id="boss")],
        dialogues=dialogues or [DialogueItem(speaker="boss", text="hello world")],
    )


def question_level(**rules):
    return make_level(
        [
            DialogueItem(speaker="boss", text="hi"),
            DialogueItem(speaker="me", answers=[Answer(text="A", correct=True), Answer(text="B", correct=False)]),
            DialogueItem(
                speaker="boss",
                feedback=[Answer(text="good", correct=True), Answer(text="bad", correct=False)],
            ),
            DialogueItem(speaker="boss", text="bye"),
        ],
        **rules,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def play(clock, rng):
    """Initialise and start a level in one go."""

    def _play(level, metadata=None):
        return engine.start(engine.initialize(level, metadata, rng), clock, rng)

    return _play
