"""
dojo_game.py — Server-side Scam Dojo game sessions.

One game = a fixed list of scenarios played in order with 3 lives.

SCORING
───────
    correct  → +10, plus a +5 streak bonus when the streak *before* this
               answer is already ≥ streak_bonus_threshold (default 2, i.e.
               the third correct answer in a row is the first one rewarded
               extra); streak += 1
    wrong    → lives -= 1, streak = 0

The game ends when lives reach 0 (checked after the answer is applied) or
the last scenario has been answered. A game won with lives left is a win.

Games are kept in memory only (no persisted state) in a bounded store that
evicts the oldest game first.

USAGE
─────
    store = DojoGameStore()
    game = store.create(scenarios)
    outcome = game.answer(says_scam=True)
"""

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass

from scamshield.core.errors import GameFinishedError, GameNotFoundError
from scamshield.models.dojo import DojoScenario

logger = logging.getLogger(__name__)

STARTING_LIVES = 3
POINTS_CORRECT = 10
POINTS_STREAK_BONUS = 5


@dataclass(frozen=True)
class DojoOutcome:
    scenario: DojoScenario
    correct: bool
    points: int
    score: int
    lives: int
    streak: int
    game_over: bool
    finished: bool


class DojoGame:
    def __init__(
        self,
        scenarios: list[DojoScenario],
        lives: int = STARTING_LIVES,
        streak_bonus_threshold: int = 2,
        game_id: str | None = None,
    ) -> None:
        if not scenarios:
            raise ValueError("A Dojo game needs at least one scenario")
        self.id = game_id or uuid.uuid4().hex
        self.scenarios = list(scenarios)
        self.lives = lives
        self.score = 0
        self.streak = 0
        self.index = 0
        self._streak_bonus_threshold = streak_bonus_threshold

    @property
    def game_over(self) -> bool:
        return self.lives == 0

    @property
    def finished(self) -> bool:
        return self.game_over or self.index >= len(self.scenarios)

    @property
    def won(self) -> bool:
        return self.finished and self.lives > 0

    @property
    def current(self) -> DojoScenario:
        if self.finished:
            raise GameFinishedError()
        return self.scenarios[self.index]

    def answer(self, says_scam: bool) -> DojoOutcome:
        scenario = self.current
        correct = says_scam == scenario.is_scam

        points = 0
        if correct:
            points = POINTS_CORRECT
            if self.streak >= self._streak_bonus_threshold:
                points += POINTS_STREAK_BONUS
            self.score += points
            self.streak += 1
        else:
            self.lives -= 1
            self.streak = 0

        self.index += 1
        return DojoOutcome(
            scenario=scenario,
            correct=correct,
            points=points,
            score=self.score,
            lives=self.lives,
            streak=self.streak,
            game_over=self.game_over,
            finished=self.finished,
        )


class DojoGameStore:
    """In-memory games keyed by id. Not shared across worker processes."""

    def __init__(self, max_games: int = 1000) -> None:
        self._games: OrderedDict[str, DojoGame] = OrderedDict()
        self._max_games = max_games

    def __len__(self) -> int:
        return len(self._games)

    def create(self, scenarios: list[DojoScenario]) -> DojoGame:
        game = DojoGame(scenarios)
        self._games[game.id] = game
        while len(self._games) > self._max_games:
            evicted, _ = self._games.popitem(last=False)
            logger.debug("Evicted Dojo game %s", evicted)
        return game

    def get(self, game_id: str) -> DojoGame:
        try:
            return self._games[game_id]
        except KeyError:
            raise GameNotFoundError() from None
