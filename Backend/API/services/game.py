"""
Hosts one RoundEngine per player round and settles finished rounds
against the player's account: debit on start, payout on a win, stats,
the recovery top-up and the history record.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from services.engine import (
    EngineConfig, RoundEngine, RoundInProgress, RoundOutcome,
    RoundParameters, RoundState, TERMINAL,
)
from services.rng import new_seed

log = logging.getLogger(__name__)


class GameError(Exception):
    pass


class RoundNotFound(GameError):
    pass


class UnknownAccount(GameError):
    pass


@dataclass
class Table:
    round_id: str
    username: str
    number: int
    engine: RoundEngine
    parameters: RoundParameters
    settled: bool = field(default=False)
    # set when a settlement raised; the next advance or cash_out retries it
    pending: bool = field(default=False)
    # payout credited; survives a failed settlement so a retry cannot pay twice
    paid: bool = field(default=False)
    _settling: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def snapshot(self) -> dict:
        data = {
            "round_id": self.round_id,
            "username": self.username,
            "round": self.number,
            "parameters": self.parameters.to_dict(),
            "state": self.engine.state.to_dict(),
        }
        outcome = self.engine.outcome
        if outcome is not None:
            data["outcome"] = outcome.to_dict()
        return data


class GameService:
    def __init__(self, store, config: Optional[EngineConfig] = None,
                 recovery_balance: float = 100.0, history_limit: int = 50,
                 seed_source: Callable[[], str] = new_seed):
        self.store = store
        self.config = config or EngineConfig()
        self.recovery_balance = recovery_balance
        self.history_limit = history_limit
        self._seed_source = seed_source
        self._lock = threading.Lock()
        self._tables: dict[str, Table] = {}
        # username -> round_id of the player's latest round, live or finished
        self._latest: dict[str, str] = {}

    def start(self, username: str, bet, client_seed: Optional[str] = None) -> Table:
        with self._lock:
            previous = self._tables.get(self._latest.get(username, ""))
            if previous is not None and not previous.settled:
                raise RoundInProgress("You already have a round in progress")
            account = self.store.get_account(username)
            if account is None:
                raise UnknownAccount(f"Unknown account {username!r}")
            engine = RoundEngine(self.config, self._seed_source)
            params = engine.start_round(bet, account.balance, client_seed)
            self.store.adjust_balance(username, -engine.state.bet)
            table = Table(
                round_id=uuid.uuid4().hex,
                username=username,
                number=account.games_played + 1,
                engine=engine,
                parameters=params,
            )
            if previous is not None:
                del self._tables[previous.round_id]
            self._tables[table.round_id] = table
            self._latest[username] = table.round_id
        return table

    def get(self, round_id: str, username: Optional[str] = None) -> Table:
        table = self._tables.get(round_id)
        if table is None or (username is not None and table.username != username):
            raise RoundNotFound(f"Round {round_id} not found")
        return table

    def active_tables(self) -> list[Table]:
        with self._lock:
            return [t for t in self._tables.values() if not t.settled]

    def advance(self, round_id: str, ticks: int = 1, username: Optional[str] = None) -> RoundState:
        table = self.get(round_id, username)
        if table.pending:
            self._settle(table)
            return table.engine.state
        state = table.engine.advance(ticks)
        if state.status in TERMINAL:
            self._settle(table)
        return state

    def cash_out(self, round_id: str, username: Optional[str] = None) -> RoundOutcome:
        table = self.get(round_id, username)
        if table.pending:
            return self._settle(table)
        table.engine.cash_out()
        return self._settle(table)

    def history(self, username: str, limit: int = 10) -> list[dict]:
        return self.store.recent_games(username, limit)

    def _settle(self, table: Table) -> RoundOutcome:
        """Apply a finished round to the account.

        ``settled`` is only set once the balance and stats writes have gone
        through. If one raises, the table is left ``pending`` and the next
        ``advance`` or ``cash_out`` on the round settles it again.
        """
        outcome = table.engine.outcome
        name = table.username
        with table._settling:
            if table.settled:
                return outcome
            try:
                self._apply(table, outcome)
            except Exception:
                table.pending = True
                log.exception("settlement of round %s for %s failed", table.round_id, name)
                raise
            table.pending = False
            table.settled = True

        record = dict(outcome.to_dict(), username=name, round=table.number, round_id=table.round_id)
        try:
            self.store.add_game(name, record, self.history_limit)
        except Exception:
            log.exception("could not save round %s for %s", table.round_id, name)
        return outcome

    def _apply(self, table: Table, outcome: RoundOutcome) -> None:
        name = table.username
        if outcome.won:
            if not table.paid:
                self.store.adjust_balance(name, outcome.payout)
                table.paid = True
            self.store.record_stats(name, outcome.bet, outcome.payout - outcome.bet, 0.0)
        else:
            self.store.record_stats(name, outcome.bet, 0.0, outcome.bet)
        account = self.store.get_account(name)
        if account is not None and account.balance <= 0:
            self.store.update_account(name, balance=self.recovery_balance)
            log.info("%s recovered to %s", name, self.recovery_balance)
