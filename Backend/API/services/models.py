from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional

RANKS = ("user", "elite", "admin", "owner")
PERMISSIONS = ("give_money", "remove_money", "change_rank", "ban_user")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Account:
    username: str
    password_hash: str
    balance: float
    rank: str = "user"
    games_played: int = 0
    total_wagered: float = 0.0
    total_won: float = 0.0
    total_lost: float = 0.0
    is_active: bool = True
    admin_permissions: list = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    last_login: Optional[datetime] = None

    def can(self, permission: str) -> bool:
        if not self.is_active:
            return False
        if self.rank == "owner":
            return True
        return self.rank == "admin" and permission in self.admin_permissions

    def public(self) -> dict:
        """Profile without the password hash."""
        data = asdict(self)
        data.pop("password_hash")
        data["created_at"] = self.created_at.isoformat()
        data["last_login"] = self.last_login.isoformat() if self.last_login else None
        return data


@dataclass
class AdminLogEntry:
    admin: str
    action: str
    details: dict
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "admin": self.admin,
            "action": self.action,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }
