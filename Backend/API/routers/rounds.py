import json

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field
from typing import Optional

from deps.auth import current_user
from deps.hub import hub
from deps.services import get_game
from services.driver import channel
from services.engine import InvalidBet, NotActive, RoundInProgress, verify_round
from services.game import GameService, RoundNotFound
from services.models import Account

router = APIRouter(prefix="/rounds", tags=["rounds"])


class StartIn(BaseModel):
    bet: float
    client_seed: Optional[str] = Field(default=None, min_length=1, max_length=64)


class AdvanceIn(BaseModel):
    ticks: int = Field(default=1, ge=1, le=1000)


class VerifyIn(BaseModel):
    server_seed: str = Field(min_length=1)
    server_seed_hash: str = Field(min_length=64, max_length=64)
    client_seed: str = Field(min_length=1)
    # tick the player cashed out at; omitted replays to the uncashed end
    ticks: Optional[int] = Field(default=None, ge=0)
    bet: float = Field(default=1.0, gt=0)


async def publish(game: GameService, round_id: str) -> Optional[dict]:
    """Push the round's snapshot to its websocket watchers."""
    try:
        snapshot = game.get(round_id).snapshot()
    except RoundNotFound:
        # replaced by the player's next round in the meantime
        return None
    await hub.send(channel(round_id), json.dumps(snapshot))
    return snapshot


@router.post("/start")
def start_round(data: StartIn, user: Account = Depends(current_user),
                game: GameService = Depends(get_game)):
    try:
        table = game.start(user.username, data.bet, data.client_seed)
    except InvalidBet as e:
        raise HTTPException(400, str(e))
    except RoundInProgress as e:
        raise HTTPException(409, str(e))
    return table.snapshot()


@router.get("/{round_id}")
def get_round(round_id: str, user: Account = Depends(current_user),
              game: GameService = Depends(get_game)):
    try:
        return game.get(round_id, user.username).snapshot()
    except RoundNotFound as e:
        raise HTTPException(404, str(e))


@router.post("/{round_id}/advance")
async def advance_round(round_id: str, data: AdvanceIn, user: Account = Depends(current_user),
                        game: GameService = Depends(get_game)):
    try:
        await run_in_threadpool(game.advance, round_id, data.ticks, user.username)
    except RoundNotFound as e:
        raise HTTPException(404, str(e))
    except NotActive as e:
        raise HTTPException(409, str(e))
    snapshot = await publish(game, round_id)
    if snapshot is None:
        raise HTTPException(404, f"Round {round_id} not found")
    return snapshot


@router.post("/{round_id}/cashout")
async def cash_out(round_id: str, user: Account = Depends(current_user),
                   game: GameService = Depends(get_game)):
    try:
        outcome = await run_in_threadpool(game.cash_out, round_id, user.username)
    except RoundNotFound as e:
        raise HTTPException(404, str(e))
    except NotActive as e:
        raise HTTPException(409, str(e))
    await publish(game, round_id)
    account = await run_in_threadpool(game.store.get_account, user.username)
    return {"outcome": outcome.to_dict(), "balance": account.balance if account else None}


@router.post("/verify")
def verify(data: VerifyIn, game: GameService = Depends(get_game)):
    return verify_round(data.server_seed, data.server_seed_hash, data.client_seed,
                        data.ticks, config=game.config, bet=data.bet).to_dict()
