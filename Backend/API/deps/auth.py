from fastapi import Depends, HTTPException, Request

from deps.services import get_accounts
from services.accounts import AccountBanned, AccountService, InvalidCredentials
from services.models import Account


def bearer_token(request: Request) -> str:
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return ""


def current_user(token: str = Depends(bearer_token),
                 accounts: AccountService = Depends(get_accounts)) -> Account:
    try:
        return accounts.authenticate(token)
    except InvalidCredentials as e:
        raise HTTPException(401, str(e))
    except AccountBanned as e:
        raise HTTPException(403, str(e))
