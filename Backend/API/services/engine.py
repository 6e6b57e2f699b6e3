"""
Round engine for the block mining game.

A round commits to a server seed (only its SHA-256 hash is published),
derives its mode and difficulty from the server and client seeds, then
climbs tick by tick until the block is orphaned, completes, or the player
cashes out. Every draw is an HMAC sub-stream of the seeds, so a finished
round can be replayed exactly from the revealed seeds.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterator, Optional

from services.rng import hash_seed, new_seed, pf_roll, verify_commitment

log = logging.getLogger(__name__)


class Mode(str, Enum):
    NORMAL = "normal"
    HOT = "hot"


class RoundStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"
    ORPHANED = "orphaned"
    CASHED_OUT = "cashed_out"


TERMINAL = frozenset({RoundStatus.COMPLETED, RoundStatus.ORPHANED, RoundStatus.CASHED_OUT})
WINNING = frozenset({RoundStatus.COMPLETED, RoundStatus.CASHED_OUT})


class EngineError(Exception):
    """Base error for rejected round operations."""


class InvalidBet(EngineError):
    pass


class NotActive(EngineError):
    pass


class RoundInProgress(EngineError):
    pass


@dataclass(frozen=True)
class EngineConfig:
    normal_mode_chance: float = 0.9
    orphan_base_chance: float = 0.001
    orphan_max_chance: float = 0.95
    difficulty_range: tuple = (0.5, 3.0)
    normal_max_multiplier: float = 2.5
    hot_max_multiplier: float = 10.0
    # Progress per tick: Hot fills the block 2.5x faster than Normal.
    normal_progress_step: float = 0.2
    hot_progress_step: float = 0.5

    def __post_init__(self):
        for name in ("normal_mode_chance", "orphan_base_chance", "orphan_max_chance"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.orphan_base_chance > self.orphan_max_chance:
            raise ValueError("orphan_base_chance must not exceed orphan_max_chance")
        lo, hi = self.difficulty_range
        if lo > hi:
            raise ValueError(f"difficulty_range is inverted: {self.difficulty_range}")
        if self.normal_max_multiplier < 1.0 or self.hot_max_multiplier < 1.0:
            raise ValueError("max multipliers must be >= 1.0")
        if self.normal_progress_step <= 0 or self.hot_progress_step <= 0:
            raise ValueError("progress steps must be positive")

    def max_multiplier(self, mode: Mode) -> float:
        return self.hot_max_multiplier if mode is Mode.HOT else self.normal_max_multiplier

    def progress_step(self, mode: Mode) -> float:
        return self.hot_progress_step if mode is Mode.HOT else self.normal_progress_step


def max_progress(difficulty: float) -> float:
    """Fraction of the block reachable before a forced orphan."""
    return max(0.1, 1.0 - (difficulty - 0.5) * 0.3)


def break_chance(normalized_progress: float, config: EngineConfig) -> float:
    base, top = config.orphan_base_chance, config.orphan_max_chance
    return base + (top - base) * normalized_progress ** 3


def multiplier_at(progress: float, mode: Mode, config: EngineConfig) -> float:
    top = config.max_multiplier(mode)
    return min(top, 1.0 + (progress / 100) * (top - 1.0))


@dataclass(frozen=True)
class RoundParameters:
    mode: Mode
    difficulty: float
    max_progress: float
    server_seed_hash: str
    client_seed: str

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "difficulty": self.difficulty,
            "max_progress": self.max_progress,
            "server_seed_hash": self.server_seed_hash,
            "client_seed": self.client_seed,
        }


@dataclass(frozen=True)
class RoundState:
    status: RoundStatus = RoundStatus.IDLE
    bet: float = 0.0
    progress: float = 0.0
    multiplier: float = 1.0
    tick: int = 0

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "bet": self.bet,
            "progress": self.progress,
            "multiplier": self.multiplier,
            "tick": self.tick,
        }


@dataclass(frozen=True)
class RoundOutcome:
    status: RoundStatus
    bet: float
    multiplier: float
    payout: float
    mode: Mode
    difficulty: float
    max_progress: float
    ticks: int
    server_seed: str
    server_seed_hash: str
    client_seed: str
    finished_at: datetime

    @property
    def won(self) -> bool:
        return self.status in WINNING

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "won": self.won,
            "bet": self.bet,
            "multiplier": self.multiplier,
            "payout": self.payout,
            "mode": self.mode.value,
            "difficulty": self.difficulty,
            "max_progress": self.max_progress,
            "ticks": self.ticks,
            "server_seed": self.server_seed,
            "server_seed_hash": self.server_seed_hash,
            "client_seed": self.client_seed,
            "timestamp": self.finished_at.isoformat(),
        }


def derive_parameters(server_seed: str, client_seed: str, config: EngineConfig) -> RoundParameters:
    mode_roll = pf_roll(server_seed, client_seed, "mode")
    mode = Mode.NORMAL if mode_roll < config.normal_mode_chance else Mode.HOT
    lo, hi = config.difficulty_range
    difficulty = lo + pf_roll(server_seed, client_seed, "difficulty") * (hi - lo)
    return RoundParameters(
        mode=mode,
        difficulty=difficulty,
        max_progress=max_progress(difficulty),
        server_seed_hash=hash_seed(server_seed),
        client_seed=client_seed,
    )


def step(state: RoundState, params: RoundParameters, server_seed: str,
         config: EngineConfig) -> RoundState:
    """Apply a single tick to an active round."""
    tick = state.tick + 1
    # From the tick count, not accumulated, so float error cannot drift.
    progress = min(100.0, tick * config.progress_step(params.mode))
    multiplier = multiplier_at(progress, params.mode, config)

    normalized = (progress / 100) / params.max_progress
    if normalized >= 1.0:
        status = RoundStatus.ORPHANED
    elif pf_roll(server_seed, params.client_seed, f"break:{tick}") < break_chance(normalized, config):
        status = RoundStatus.ORPHANED
    elif progress >= 100:
        status = RoundStatus.COMPLETED
    else:
        status = RoundStatus.ACTIVE
    return replace(state, status=status, progress=progress, multiplier=multiplier, tick=tick)


def replay(server_seed: str, client_seed: str, bet: float = 1.0,
           config: Optional[EngineConfig] = None,
           max_ticks: Optional[int] = None) -> Iterator[RoundState]:
    """Yield every state a round goes through, one per tick.

    Stops at the first terminal state, or after ``max_ticks`` ticks. A round
    always terminates by the tick its progress reaches 100.
    """
    config = config or EngineConfig()
    params = derive_parameters(server_seed, client_seed, config)
    state = RoundState(status=RoundStatus.ACTIVE, bet=bet)
    while state.status is RoundStatus.ACTIVE:
        if max_ticks is not None and state.tick >= max_ticks:
            return
        state = step(state, params, server_seed, config)
        yield state


@dataclass(frozen=True)
class Verification:
    commitment_ok: bool
    parameters: RoundParameters
    final: RoundState

    def to_dict(self) -> dict:
        return {
            "commitment_ok": self.commitment_ok,
            "parameters": self.parameters.to_dict(),
            "final": self.final.to_dict(),
        }


def verify_round(server_seed: str, server_seed_hash: str, client_seed: str,
                 ticks: Optional[int] = None, config: Optional[EngineConfig] = None,
                 bet: float = 1.0) -> Verification:
    """Re-derive a revealed round.

    With ``ticks`` the round is replayed up to the tick the player cashed
    out at; if it was still active there, the final state is CashedOut at
    that tick's multiplier. Without it, the replay runs to where the round
    would have ended uncashed.
    """
    if ticks is not None and (isinstance(ticks, bool) or not isinstance(ticks, int) or ticks < 0):
        raise ValueError(f"ticks must be a non-negative integer, got {ticks!r}")
    config = config or EngineConfig()
    params = derive_parameters(server_seed, client_seed, config)
    final = RoundState(status=RoundStatus.ACTIVE, bet=bet)
    for final in replay(server_seed, client_seed, bet=bet, config=config, max_ticks=ticks):
        pass
    if final.status is RoundStatus.ACTIVE:
        final = replace(final, status=RoundStatus.CASHED_OUT)
    return Verification(
        commitment_ok=verify_commitment(server_seed, server_seed_hash),
        parameters=params,
        final=final,
    )


def _check_bet(bet, balance) -> float:
    if isinstance(bet, bool):
        raise InvalidBet(f"bet must be a number, got {bet!r}")
    try:
        amount = float(bet)
        available = float(balance)
    except (TypeError, ValueError):
        raise InvalidBet(f"bet must be a number, got {bet!r}") from None
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidBet(f"bet must be positive, got {bet!r}")
    # Negated so a NaN balance is rejected too.
    if not amount < available:
        raise InvalidBet(f"bet {amount} must be less than balance {balance}")
    return amount


class RoundEngine:
    """Owns the lifecycle of one round at a time.

    ``advance`` and ``cash_out`` are serialized on a per-engine lock, so a
    cash out racing the driver either lands on the live round or fails with
    ``NotActive``.
    """

    def __init__(self, config: Optional[EngineConfig] = None,
                 seed_source: Callable[[], str] = new_seed):
        self.config = config or EngineConfig()
        self._seed_source = seed_source
        self._lock = threading.Lock()
        self._state = RoundState()
        self._params: Optional[RoundParameters] = None
        self._server_seed: Optional[str] = None
        self._outcome: Optional[RoundOutcome] = None

    @property
    def state(self) -> RoundState:
        return self._state

    @property
    def parameters(self) -> Optional[RoundParameters]:
        return self._params

    @property
    def outcome(self) -> Optional[RoundOutcome]:
        return self._outcome

    def start_round(self, bet, balance, client_seed: Optional[str] = None) -> RoundParameters:
        amount = _check_bet(bet, balance)
        with self._lock:
            if self._state.status is RoundStatus.ACTIVE:
                raise RoundInProgress("a round is already active")
            server_seed = self._seed_source()
            params = derive_parameters(server_seed, client_seed or self._seed_source(), self.config)
            self._server_seed = server_seed
            self._params = params
            self._outcome = None
            self._state = RoundState(status=RoundStatus.ACTIVE, bet=amount)
        log.info("round started hash=%s mode=%s difficulty=%.3f bet=%s",
                 params.server_seed_hash, params.mode.value, params.difficulty, amount)
        return params

    def advance(self, elapsed_ticks: int = 1) -> RoundState:
        if isinstance(elapsed_ticks, bool) or not isinstance(elapsed_ticks, int) or elapsed_ticks < 1:
            raise ValueError(f"elapsed_ticks must be a positive integer, got {elapsed_ticks!r}")
        with self._lock:
            state = self._require_active()
            for _ in range(elapsed_ticks):
                state = step(state, self._params, self._server_seed, self.config)
                if state.status is not RoundStatus.ACTIVE:
                    break
            self._state = state
            if state.status in TERMINAL:
                self._finish()
            return state

    def cash_out(self) -> float:
        with self._lock:
            state = self._require_active()
            self._state = replace(state, status=RoundStatus.CASHED_OUT)
            return self._finish().payout

    def _require_active(self) -> RoundState:
        if self._state.status is not RoundStatus.ACTIVE:
            raise NotActive(f"round is {self._state.status.value}")
        return self._state

    def _finish(self) -> RoundOutcome:
        state, params = self._state, self._params
        payout = state.bet * state.multiplier if state.status in WINNING else 0.0
        self._outcome = RoundOutcome(
            status=state.status,
            bet=state.bet,
            multiplier=state.multiplier,
            payout=payout,
            mode=params.mode,
            difficulty=params.difficulty,
            max_progress=params.max_progress,
            ticks=state.tick,
            server_seed=self._server_seed,
            server_seed_hash=params.server_seed_hash,
            client_seed=params.client_seed,
            finished_at=datetime.now(timezone.utc),
        )
        log.info("round finished hash=%s status=%s multiplier=%.4f payout=%s",
                 params.server_seed_hash, state.status.value, state.multiplier, payout)
        return self._outcome
