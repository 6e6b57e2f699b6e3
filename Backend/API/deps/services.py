from functools import lru_cache

from deps import config
from deps.store import build_store
from services.accounts import AccountService
from services.admin import AdminService
from services.game import GameService


@lru_cache
def get_store():
    return build_store(config.STORAGE_BACKEND, config.DB_DSN)


@lru_cache
def get_accounts() -> AccountService:
    return AccountService(get_store(), starting_balance=config.STARTING_BALANCE)


@lru_cache
def get_admin() -> AdminService:
    return AdminService(get_store())


@lru_cache
def get_game() -> GameService:
    return GameService(
        get_store(),
        config.engine_config(),
        recovery_balance=config.RECOVERY_BALANCE,
        history_limit=config.HISTORY_LIMIT,
    )
