"""
Owner/admin money management.

Actions are available as plain methods and through the text console
(``.give alice 250``, ``.remove bob $1,000``, ``.rank carol admin``,
``.ban dave``). Every successful action lands in the admin log.
"""

import logging
import math

from services.models import Account, AdminLogEntry, RANKS

log = logging.getLogger(__name__)

USAGE = ".give <player> <amount> | .remove <player> <amount> | .rank <player> <rank> | .ban <player>"


class AdminError(Exception):
    pass


class PermissionDenied(AdminError):
    pass


class UnknownPlayer(AdminError):
    pass


class InvalidAmount(AdminError):
    pass


class InvalidCommand(AdminError):
    pass


def parse_amount(text) -> float:
    """Parse an amount like ``$1,250.50``; must be a positive number."""
    cleaned = "".join(ch for ch in str(text) if ch not in "$, \t")
    try:
        amount = float(cleaned)
    except ValueError:
        raise InvalidAmount(f'Invalid amount: "{text}". Amount must be a positive number.') from None
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidAmount(f'Invalid amount: "{text}". Amount must be a positive number.')
    return amount


def _money(amount: float) -> str:
    return f"${amount:,.2f}"


class AdminService:
    def __init__(self, store):
        self.store = store

    def _authorize(self, admin: Account, permission: str) -> None:
        if not admin.can(permission):
            log.warning("%s denied %s", admin.username, permission)
            raise PermissionDenied("Insufficient permissions")

    def _target(self, username: str) -> Account:
        account = self.store.get_account(username)
        if account is None:
            raise UnknownPlayer(f'User "{username}" not found')
        return account

    def _log(self, admin: Account, action: str, **details) -> None:
        self.store.add_admin_log(AdminLogEntry(admin=admin.username, action=action, details=details))
        log.info("admin %s %s %s", admin.username, action, details)

    def give(self, admin: Account, player: str, amount) -> str:
        self._authorize(admin, "give_money")
        amount = parse_amount(amount)
        self._target(player)
        balance = self.store.adjust_balance(player, amount)
        self._log(admin, "give_money", target=player, amount=amount, new_balance=balance)
        return f"Gave {_money(amount)} to {player}. New balance: {_money(balance)}"

    def remove(self, admin: Account, player: str, amount) -> str:
        self._authorize(admin, "remove_money")
        amount = parse_amount(amount)
        old = self._target(player).balance
        balance = self.store.adjust_balance(player, -amount)
        self._log(admin, "remove_money", target=player, amount=amount, new_balance=balance)
        return f"Removed {_money(amount)} from {player}. Balance: {_money(old)} -> {_money(balance)}"

    def change_rank(self, admin: Account, player: str, rank: str) -> str:
        self._authorize(admin, "change_rank")
        rank = rank.lower()
        if rank not in RANKS:
            raise InvalidCommand(f"Unknown rank {rank!r}; expected one of {', '.join(RANKS)}")
        if rank == "owner" and admin.rank != "owner":
            raise PermissionDenied("Only owners can assign owner rank")
        self._target(player)
        self.store.update_account(player, rank=rank)
        self._log(admin, "change_rank", target=player, rank=rank)
        return f"{player} is now {rank}"

    def ban(self, admin: Account, player: str) -> str:
        self._authorize(admin, "ban_user")
        if player == admin.username:
            raise InvalidCommand("You cannot ban yourself")
        self._target(player)
        self.store.update_account(player, is_active=False)
        self.store.drop_user_sessions(player)
        self._log(admin, "ban_user", target=player)
        return f"{player} has been banned"

    def execute(self, admin: Account, command: str) -> str:
        parts = (command or "").split()
        if not parts:
            raise InvalidCommand("Please enter a command")
        cmd = parts[0].lower()
        if cmd == ".give" and len(parts) >= 3:
            return self.give(admin, parts[1], " ".join(parts[2:]))
        if cmd == ".remove" and len(parts) >= 3:
            return self.remove(admin, parts[1], " ".join(parts[2:]))
        if cmd == ".rank" and len(parts) == 3:
            return self.change_rank(admin, parts[1], parts[2])
        if cmd == ".ban" and len(parts) == 2:
            return self.ban(admin, parts[1])
        raise InvalidCommand(f"Invalid command format. Expected: {USAGE}")

    def logs(self, admin: Account, limit: int = 50) -> list[dict]:
        if not admin.is_active or admin.rank not in ("admin", "owner"):
            raise PermissionDenied("Insufficient permissions")
        return [e.to_dict() for e in self.store.admin_logs(limit)]
