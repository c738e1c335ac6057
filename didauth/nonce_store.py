# didauth/nonce_store.py

import hmac
import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from siwe import generate_nonce

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Challenge:
    challenge_id: str
    nonce: str
    created_at: float


class NonceStore(ABC):
    """Outstanding one-time challenges keyed by challenge id.

    Implementations must make `consume_if_matches` a single atomic
    check-and-delete per challenge id.
    """

    @abstractmethod
    def issue(self) -> Tuple[str, str]:
        """Create a challenge and return `(challenge_id, nonce)`."""

    @abstractmethod
    def consume_if_matches(self, challenge_id: str, nonce: str) -> bool:
        """Delete the challenge and return True only if it is live and the nonce matches."""

    @abstractmethod
    def sweep_expired(self) -> int:
        """Reclaim expired entries. Returns how many were removed."""

    @abstractmethod
    def __len__(self) -> int:
        ...


class InMemoryNonceStore(NonceStore):
    """Single-process store. Entries are spread over shards, each with its own lock.

    WARNING: state is lost on restart and is not shared across workers or nodes.
    """

    def __init__(
        self,
        ttl_seconds: int = 300,
        shard_count: int = 16,
        sweep_interval: float = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        if shard_count < 1:
            raise ValueError("shard_count must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._shards: List[Dict[str, Challenge]] = [{} for _ in range(shard_count)]
        self._locks = [threading.Lock() for _ in range(shard_count)]
        self._last_sweep = clock()
        self._sweep_lock = threading.Lock()
        self._dummy_nonce = generate_nonce()

    def _shard(self, challenge_id: str) -> int:
        return hash(challenge_id) % len(self._shards)

    def _is_expired(self, entry: Challenge, now: float) -> bool:
        return now - entry.created_at > self.ttl_seconds

    def issue(self) -> Tuple[str, str]:
        self._maybe_sweep()
        challenge_id = str(uuid.uuid4())
        nonce = generate_nonce()
        idx = self._shard(challenge_id)
        with self._locks[idx]:
            self._shards[idx][challenge_id] = Challenge(challenge_id, nonce, self._clock())
        logger.debug(f"Issued challenge {challenge_id}")
        return challenge_id, nonce

    def get(self, challenge_id: str) -> Challenge | None:
        """Read-only lookup; expired entries are reported as absent."""
        idx = self._shard(challenge_id)
        with self._locks[idx]:
            entry = self._shards[idx].get(challenge_id)
            if entry is None or self._is_expired(entry, self._clock()):
                return None
            return entry

    def consume_if_matches(self, challenge_id: str, nonce: str) -> bool:
        if not isinstance(challenge_id, str) or not isinstance(nonce, str):
            return False
        idx = self._shard(challenge_id)
        with self._locks[idx]:
            shard = self._shards[idx]
            entry = shard.get(challenge_id)
            # Compare even when missing or expired so every failure takes the same path
            stored = entry.nonce if entry is not None else self._dummy_nonce
            matches = hmac.compare_digest(stored.encode(), nonce.encode())
            if entry is None or not matches or self._is_expired(entry, self._clock()):
                return False
            del shard[challenge_id]
        logger.debug(f"Challenge consumed: {challenge_id}")
        return True

    def sweep_expired(self) -> int:
        removed = 0
        for lock, shard in zip(self._locks, self._shards):
            with lock:
                now = self._clock()
                expired = [cid for cid, entry in shard.items() if self._is_expired(entry, now)]
                for cid in expired:
                    del shard[cid]
                removed += len(expired)
        if removed:
            logger.debug(f"Swept {removed} expired challenge(s)")
        return removed

    def _maybe_sweep(self):
        now = self._clock()
        if now - self._last_sweep < self.sweep_interval:
            return
        # Only one caller sweeps; the rest skip instead of queueing up
        if not self._sweep_lock.acquire(blocking=False):
            return
        try:
            self._last_sweep = now
            self.sweep_expired()
        finally:
            self._sweep_lock.release()

    def __len__(self) -> int:
        total = 0
        for lock, shard in zip(self._locks, self._shards):
            with lock:
                total += len(shard)
        return total
