from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from deps.auth import bearer_token, current_user
from deps.services import get_accounts
from services.accounts import (
    AccountBanned, AccountService, InvalidCredentials, InvalidPassword,
    InvalidUsername, UsernameTaken,
)
from services.models import Account

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterIn(BaseModel):
    username: str = Field(max_length=32)
    password: str = Field(max_length=128)
    confirm_password: str = Field(max_length=128)


class LoginIn(BaseModel):
    username: str
    password: str


class PasswordIn(BaseModel):
    current_password: str
    new_password: str = Field(max_length=128)
    confirm_password: str = Field(max_length=128)


@router.post("/register", status_code=201)
def register(data: RegisterIn, accounts: AccountService = Depends(get_accounts)):
    try:
        account = accounts.register(data.username, data.password, data.confirm_password)
    except (InvalidUsername, InvalidPassword) as e:
        raise HTTPException(400, str(e))
    except UsernameTaken as e:
        raise HTTPException(409, str(e))
    return account.public()


@router.post("/login")
def login(data: LoginIn, accounts: AccountService = Depends(get_accounts)):
    try:
        token = accounts.login(data.username, data.password)
    except InvalidCredentials as e:
        raise HTTPException(401, str(e))
    except AccountBanned as e:
        raise HTTPException(403, str(e))
    return {"token": token, "token_type": "bearer"}


@router.post("/logout")
def logout(token: str = Depends(bearer_token), accounts: AccountService = Depends(get_accounts)):
    accounts.logout(token)
    return {"ok": True}


@router.get("/me")
def me(user: Account = Depends(current_user)):
    return user.public()


@router.post("/password")
def change_password(data: PasswordIn, user: Account = Depends(current_user),
                    accounts: AccountService = Depends(get_accounts)):
    try:
        accounts.change_password(user.username, data.current_password,
                                 data.new_password, data.confirm_password)
    except InvalidCredentials as e:
        raise HTTPException(400, str(e))
    except InvalidPassword as e:
        raise HTTPException(400, str(e))
    return {"ok": True}
