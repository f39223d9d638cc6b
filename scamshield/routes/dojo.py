"""
dojo.py — Scam Dojo quiz endpoints.

Routes:
  GET  /api/v1/dojo/scenarios               — 5 fresh scenarios (or the fallback pair)
  POST /api/v1/dojo/games                   — start a game; answers are withheld
  POST /api/v1/dojo/games/{game_id}/answers — answer the current scenario

Scenario generation never fails: a broken batch is replaced by the fallback
list. The game endpoints keep labels server-side so the client cannot peek.
"""

import logging

from fastapi import APIRouter, Depends, Query

from scamshield.ai.dojo import DojoScenarioGenerator
from scamshield.models.analysis import Language
from scamshield.models.dojo import (
    AnswerRequest,
    AnswerResponse,
    DojoQuestion,
    DojoScenario,
    GameStateResponse,
    StartGameRequest,
)
from scamshield.routes.deps import get_dojo_generator, get_game_store
from scamshield.services.dojo_game import DojoGameStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/dojo", tags=["dojo"])


@router.get("/scenarios", response_model=list[DojoScenario], response_model_by_alias=True)
async def list_scenarios(
    language: Language = Query(Language.EN),
    generator: DojoScenarioGenerator = Depends(get_dojo_generator),
):
    return await generator.generate(language)


@router.post("/games", response_model=GameStateResponse, status_code=201)
async def start_game(
    payload: StartGameRequest,
    generator: DojoScenarioGenerator = Depends(get_dojo_generator),
    store: DojoGameStore = Depends(get_game_store),
):
    scenarios = await generator.generate(payload.language)
    game = store.create(scenarios)
    logger.info("Started Dojo game %s with %d scenarios", game.id, len(scenarios))
    return GameStateResponse(
        game_id=game.id,
        questions=[
            DojoQuestion(id=s.id, text=s.text, sender=s.sender, difficulty=s.difficulty)
            for s in game.scenarios
        ],
        lives=game.lives,
        score=game.score,
    )


@router.post("/games/{game_id}/answers", response_model=AnswerResponse)
async def answer_question(
    game_id: str,
    payload: AnswerRequest,
    store: DojoGameStore = Depends(get_game_store),
):
    game = store.get(game_id)
    outcome = game.answer(payload.says_scam)
    if outcome.finished:
        logger.info("Dojo game %s finished: score=%d lives=%d", game.id, outcome.score, outcome.lives)
    return AnswerResponse(
        correct=outcome.correct,
        is_scam=outcome.scenario.is_scam,
        reason=outcome.scenario.reason,
        points=outcome.points,
        score=outcome.score,
        lives=outcome.lives,
        streak=outcome.streak,
        game_over=outcome.game_over,
        finished=outcome.finished,
    )
