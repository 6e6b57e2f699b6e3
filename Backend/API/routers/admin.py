from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from deps.auth import current_user
from deps.services import get_admin
from services.admin import (
    AdminService, InvalidAmount, InvalidCommand, PermissionDenied, UnknownPlayer,
)
from services.models import Account

router = APIRouter(prefix="/admin", tags=["admin"])


class CommandIn(BaseModel):
    command: str = Field(max_length=200)


class MoneyIn(BaseModel):
    player: str
    amount: float | str  # text so "$1,000" is accepted like in the console


class RankIn(BaseModel):
    player: str
    rank: str


class BanIn(BaseModel):
    player: str


def _run(action, *args):
    try:
        return {"ok": True, "message": action(*args)}
    except PermissionDenied as e:
        raise HTTPException(403, str(e))
    except UnknownPlayer as e:
        raise HTTPException(404, str(e))
    except (InvalidAmount, InvalidCommand) as e:
        raise HTTPException(400, str(e))


@router.post("/command")
def command(data: CommandIn, user: Account = Depends(current_user),
            admin: AdminService = Depends(get_admin)):
    return _run(admin.execute, user, data.command)


@router.post("/give")
def give(data: MoneyIn, user: Account = Depends(current_user),
         admin: AdminService = Depends(get_admin)):
    return _run(admin.give, user, data.player, data.amount)


@router.post("/remove")
def remove(data: MoneyIn, user: Account = Depends(current_user),
           admin: AdminService = Depends(get_admin)):
    return _run(admin.remove, user, data.player, data.amount)


@router.post("/rank")
def rank(data: RankIn, user: Account = Depends(current_user),
         admin: AdminService = Depends(get_admin)):
    return _run(admin.change_rank, user, data.player, data.rank)


@router.post("/ban")
def ban(data: BanIn, user: Account = Depends(current_user),
        admin: AdminService = Depends(get_admin)):
    return _run(admin.ban, user, data.player)


@router.get("/logs")
def logs(limit: int = Query(default=50, ge=1, le=500), user: Account = Depends(current_user),
         admin: AdminService = Depends(get_admin)):
    try:
        return {"logs": admin.logs(user, limit)}
    except PermissionDenied as e:
        raise HTTPException(403, str(e))
