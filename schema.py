# schema.py
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Dict, Optional, Literal

FartType = Literal["t", "p", "k", "f", "r", "z"]
FartResultType = Literal["perfect", "okay", "bad", "terrible", "missed"]
Phase = Literal["dialogue", "question", "answer", "feedback"]

FART_TYPES: List[str] = ["t", "p", "k", "f", "r", "z"]


class Participant(BaseModel):
    id: str
    name: Optional[str] = None
    voice_type: Optional[str] = Field(default=None, alias="voiceType")
    type: Literal["player", "npc"] = "npc"

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Answer(BaseModel):
    text: str
    correct: bool = False

    model_config = ConfigDict(frozen=True)


class DialogueItem(BaseModel):
    speaker: str
    text: Optional[str] = None
    answers: Optional[List[Answer]] = None
    feedback: Optional[List[Answer]] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def one_role(self) -> "DialogueItem":
        if self.text is None and self.answers is None and self.feedback is None:
            raise ValueError("dialogue item needs text, answers or feedback")
        if self.answers is not None and self.feedback is not None:
            raise ValueError("dialogue item cannot carry both answers and feedback")
        return self

    @property
    def role(self) -> str:
        if self.feedback is not None:
            return "feedback"
        if self.answers is not None and not self.text:
            return "question"
        return "speech"

    @property
    def has_answers(self) -> bool:
        return bool(self.answers)


class PressureTable(BaseModel):
    perfect: float
    okay: float
    bad: float
    terrible: Optional[float] = None

    model_config = ConfigDict(frozen=True)


class QuestionEffects(BaseModel):
    correct_shame_change: float = -10
    incorrect_shame_change: float = 15
    correct_pressure_change: float = -10
    incorrect_pressure_change: float = 20
    heartbeat_intensity: float = 70

    model_config = ConfigDict(frozen=True)


class Rules(BaseModel):
    pressure_buildup_speed: float = 5.0
    precision_window_ms: float = 200.0
    max_possible_farts_by_word: int = 2
    max_simultaneous_letters: int = 3
    letter_visible_duration_ms: float = 1500.0
    letter_float_duration_ms: float = 1000.0
    pressure_release: PressureTable = Field(
        default_factory=lambda: PressureTable(perfect=30, okay=20, bad=10)
    )
    shame_gain: PressureTable = Field(
        default_factory=lambda: PressureTable(perfect=0, okay=5, bad=20)
    )
    question_pressure_multiplier: float = 1.0
    question_effects: QuestionEffects = Field(default_factory=QuestionEffects)
    question_time_limit: Optional[str] = "10s"
    bonus_words: List[str] = Field(default_factory=list)
    bonus_word_multiplier: int = 2
    bad_fart_pause_ms: float = 0.0
    terrible_fart_pause_ms: float = 0.0
    game_speed: float = 1.0

    model_config = ConfigDict(frozen=True)

    @field_validator("max_possible_farts_by_word", "max_simultaneous_letters", "bonus_word_multiplier")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator("precision_window_ms", "letter_visible_duration_ms", "game_speed")
    @classmethod
    def positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be > 0")
        return v


class Level(BaseModel):
    id: str = "level1"
    title: str = ""
    description: str = ""
    rules: Rules = Field(default_factory=Rules)
    participants: List[Participant] = Field(default_factory=list)
    dialogues: List[DialogueItem]

    model_config = ConfigDict(frozen=True)

    @property
    def player_id(self) -> str:
        for p in self.participants:
            if p.type == "player":
                return p.id
        return ""


class Viseme(BaseModel):
    time: Optional[float] = None
    type: str
    value: str = ""
    start: Optional[int] = None
    end: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("type")
    @classmethod
    def phoneme_alias(cls, v: str) -> str:
        return "viseme" if v == "phoneme" else v


class FartOpportunity(BaseModel):
    id: int
    dialogue_index: int
    word_index: int
    viseme_index: int
    time: float
    type: FartType
    active: bool = False
    handled: bool = False
    pressed: bool = False
    pressed_time: float = 0.0
    result_type: Optional[FartResultType] = None

    model_config = ConfigDict(frozen=True)


class FartResult(BaseModel):
    type: FartResultType
    fart_type: FartType
    timestamp: float
    word_index: int = -1

    model_config = ConfigDict(frozen=True)


class QuestionAnswer(BaseModel):
    text: str
    correct: bool
    original_index: int

    model_config = ConfigDict(frozen=True)


class QuestionState(BaseModel):
    answers: List[QuestionAnswer]
    time_limit_ms: float
    time_remaining_ms: float
    start_time: float
    selected_answer: Optional[int] = None
    is_correct: Optional[bool] = None

    model_config = ConfigDict(frozen=True)


class ScreenEffects(BaseModel):
    heartbeat_intensity: float = 0
    pulse_effect: bool = False
    blur_effect: bool = False

    model_config = ConfigDict(frozen=True)


class Cue(BaseModel):
    kind: Literal["dialogue", "answer", "feedback", "fart"]
    dialogue_index: int
    metadata_key: Optional[str] = None
    fart_type: Optional[FartType] = None
    tier: Optional[FartResultType] = None

    model_config = ConfigDict(frozen=True)


class GameState(BaseModel):
    script: Level
    level: Level
    metadata: Dict[str, List[Viseme]] = Field(default_factory=dict)
    is_playing: bool = False
    is_paused: bool = False
    is_game_over: bool = False
    victory: bool = False
    phase: Phase = "dialogue"
    current_dialogue_index: int = 0
    playback_time: float = 0.0
    current_word_index: int = -1
    current_viseme_index: int = -1
    pressure: float = 0.0
    shame: float = 0.0
    combo: int = 0
    score: int = 0
    fart_opportunities: List[FartOpportunity] = Field(default_factory=list)
    last_fart_result: Optional[FartResult] = None
    current_question: Optional[QuestionState] = None
    feedback_correct: Optional[bool] = None
    paused_timestamp: Optional[float] = None
    stagger_ms: float = 0.0
    screen_effects: ScreenEffects = Field(default_factory=ScreenEffects)
    cues: List[Cue] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def rules(self) -> Rules:
        return self.level.rules

    @property
    def pressure_deficit(self) -> float:
        return -self.pressure

    @property
    def showing_question(self) -> bool:
        return self.phase == "question" and self.current_question is not None

    @property
    def current_dialogue(self) -> Optional[DialogueItem]:
        if 0 <= self.current_dialogue_index < len(self.level.dialogues):
            return self.level.dialogues[self.current_dialogue_index]
        return None
