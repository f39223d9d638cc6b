"""
dojo.py — Pydantic models for the Scam Dojo quiz.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from scamshield.models.analysis import Language


class Difficulty(str, Enum):
    EASY = "Easy"
    HARD = "Hard"


class DojoScenario(BaseModel):
    """One quiz item: a message plus its ground-truth label and explanation."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id:         str
    text:       str
    sender:     str
    is_scam:    bool = Field(alias="isScam")
    reason:     str
    difficulty: Difficulty = Difficulty.EASY


class DojoQuestion(BaseModel):
    """A scenario as shown before the player answers — no label, no reason."""

    id:         str
    text:       str
    sender:     str
    difficulty: Difficulty


# ── Game session ──────────────────────────────────────────────────────────────

class StartGameRequest(BaseModel):
    language: Language = Language.EN


class GameStateResponse(BaseModel):
    game_id:   str
    questions: list[DojoQuestion]
    lives:     int
    score:     int


class AnswerRequest(BaseModel):
    says_scam: bool


class AnswerResponse(BaseModel):
    correct:   bool
    is_scam:   bool
    reason:    str
    points:    int
    score:     int
    lives:     int
    streak:    int
    game_over: bool  # out of lives
    finished:  bool  # no more questions to play (win or lose)
