import logging
import re
import secrets
import threading

from werkzeug.security import generate_password_hash, check_password_hash

from services.models import Account, PERMISSIONS, utcnow

log = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{1,32}$")
MIN_PASSWORD = 6


class AccountError(Exception):
    pass


class InvalidUsername(AccountError):
    pass


class UsernameTaken(AccountError):
    pass


class InvalidPassword(AccountError):
    pass


class InvalidCredentials(AccountError):
    pass


class AccountBanned(AccountError):
    pass


def _check_new_password(password: str, confirm: str) -> None:
    if password != confirm:
        raise InvalidPassword("Passwords do not match")
    if len(password) < MIN_PASSWORD:
        raise InvalidPassword(f"Password must be at least {MIN_PASSWORD} characters")


class AccountService:
    def __init__(self, store, starting_balance: float = 1000.0):
        self.store = store
        self.starting_balance = starting_balance
        self._register_lock = threading.Lock()

    def register(self, username: str, password: str, confirm: str) -> Account:
        if not USERNAME_RE.match(username or ""):
            raise InvalidUsername("Username must be 1-32 letters, digits, '_', '-' or '.'")
        _check_new_password(password, confirm)
        with self._register_lock:
            # The first account on a fresh install runs the place.
            first = self.store.count_accounts() == 0
            account = Account(
                username=username,
                password_hash=generate_password_hash(password),
                balance=self.starting_balance,
                rank="owner" if first else "user",
                admin_permissions=list(PERMISSIONS) if first else [],
            )
            if not self.store.create_account(account):
                raise UsernameTaken(f"Username {username!r} already exists")
        log.info("registered %s as %s", username, account.rank)
        return account

    def login(self, username: str, password: str) -> str:
        account = self.store.get_account(username)
        if account is None or not check_password_hash(account.password_hash, password):
            log.warning("rejected login for %s", username)
            raise InvalidCredentials("Invalid username or password")
        if not account.is_active:
            log.warning("banned account %s tried to log in", username)
            raise AccountBanned("Account is banned")
        token = secrets.token_urlsafe(32)
        self.store.create_session(token, username)
        self.store.update_account(username, last_login=utcnow())
        return token

    def logout(self, token: str) -> None:
        self.store.drop_session(token)

    def authenticate(self, token: str) -> Account:
        username = self.store.session_user(token) if token else None
        account = self.store.get_account(username) if username else None
        if account is None:
            raise InvalidCredentials("Not logged in")
        if not account.is_active:
            raise AccountBanned("Account is banned")
        return account

    def change_password(self, username: str, current: str, new: str, confirm: str) -> None:
        account = self.store.get_account(username)
        if account is None or not check_password_hash(account.password_hash, current):
            raise InvalidCredentials("Current password is incorrect")
        _check_new_password(new, confirm)
        self.store.update_account(username, password_hash=generate_password_hash(new))
        log.info("password changed for %s", username)

    def leaderboard(self, limit: int = 10) -> list[dict]:
        return [
            {"position": i, "username": a.username, "rank": a.rank, "balance": a.balance}
            for i, a in enumerate(self.store.top_accounts(limit), start=1)
        ]
