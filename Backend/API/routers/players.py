from fastapi import APIRouter, Depends, Query

from deps.auth import current_user
from deps.services import get_accounts, get_game
from services.accounts import AccountService
from services.game import GameService
from services.models import Account

router = APIRouter(prefix="/players", tags=["players"])


@router.get("/leaderboard")
def leaderboard(limit: int = Query(default=10, ge=1, le=100),
                accounts: AccountService = Depends(get_accounts)):
    return {"leaders": accounts.leaderboard(limit)}


@router.get("/me/history")
def history(limit: int = Query(default=10, ge=1, le=50), user: Account = Depends(current_user),
            game: GameService = Depends(get_game)):
    return {"games": game.history(user.username, limit)}
