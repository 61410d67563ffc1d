"""Per-caller rolling-window rate limiting."""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Protocol

DAY_SECONDS = 24 * 60 * 60
SWEEP_INTERVAL_SECONDS = 60.0


class RateLimitStore(Protocol):
	"""Storage for request timestamps keyed by caller identity."""

	def hits(self, identity: str, since: float) -> int: ...

	def oldest(self, identity: str, since: float) -> Optional[float]: ...

	def add(self, identity: str, at: float) -> None: ...

	def remove_latest(self, identity: str) -> None: ...

	def sweep(self, since: float) -> None: ...


class InMemoryRateLimitStore:
	"""Process-local timestamp store. Not shared across workers or restarts."""

	def __init__(self) -> None:
		self._hits: Dict[str, Deque[float]] = {}

	def __len__(self) -> int:
		return len(self._hits)

	def _prune(self, identity: str, since: float) -> Deque[float]:
		bucket = self._hits.get(identity)
		if bucket is None:
			return deque()
		while bucket and bucket[0] <= since:
			bucket.popleft()
		if not bucket:
			del self._hits[identity]
		return bucket

	def hits(self, identity: str, since: float) -> int:
		return len(self._prune(identity, since))

	def oldest(self, identity: str, since: float) -> Optional[float]:
		bucket = self._prune(identity, since)
		return bucket[0] if bucket else None

	def add(self, identity: str, at: float) -> None:
		self._hits.setdefault(identity, deque()).append(at)

	def remove_latest(self, identity: str) -> None:
		bucket = self._hits.get(identity)
		if not bucket:
			return
		bucket.pop()
		if not bucket:
			del self._hits[identity]

	def sweep(self, since: float) -> None:
		"""Drop every identity whose newest hit is outside the window."""
		stale = [identity for identity, bucket in self._hits.items() if not bucket or bucket[-1] <= since]
		for identity in stale:
			del self._hits[identity]


class RateLimiter:
	"""Allow at most `limit` charged calls per identity in any rolling `window_seconds`.

	`try_acquire` checks and charges in one step, with no await in between, so
	concurrent requests from one identity cannot all slip past the check.
	Callers `release` the charge when the request turns out to be invalid
	before any paid work starts.
	"""

	def __init__(
		self,
		limit: int,
		window_seconds: float = DAY_SECONDS,
		store: Optional[RateLimitStore] = None,
		clock: Callable[[], float] = time.time,
		sweep_interval: float = SWEEP_INTERVAL_SECONDS,
	) -> None:
		if limit < 0:
			raise ValueError("limit must be non-negative")
		self.limit = limit
		self.window_seconds = window_seconds
		self.store: RateLimitStore = store if store is not None else InMemoryRateLimitStore()
		self.sweep_interval = sweep_interval
		self._clock = clock
		self._next_sweep = clock() + sweep_interval

	def _window_start(self) -> float:
		return self._clock() - self.window_seconds

	def _maybe_sweep(self) -> None:
		now = self._clock()
		if now >= self._next_sweep:
			self.store.sweep(now - self.window_seconds)
			self._next_sweep = now + self.sweep_interval

	def check(self, identity: str) -> bool:
		"""Return True if `identity` may make another call now. Does not charge."""
		return self.store.hits(identity, self._window_start()) < self.limit

	def try_acquire(self, identity: str) -> bool:
		"""Charge one call for `identity` if the quota allows it."""
		self._maybe_sweep()
		if not self.check(identity):
			return False
		self.store.add(identity, self._clock())
		return True

	def release(self, identity: str) -> None:
		"""Refund the most recent charge for `identity`."""
		self.store.remove_latest(identity)

	def remaining(self, identity: str) -> int:
		return max(0, self.limit - self.store.hits(identity, self._window_start()))

	def retry_after(self, identity: str) -> float:
		"""Seconds until the oldest counted call leaves the window (0 if allowed now)."""
		if self.check(identity):
			return 0.0
		oldest = self.store.oldest(identity, self._window_start())
		if oldest is None:
			return 0.0
		return max(0.0, oldest + self.window_seconds - self._clock())

	def quota_message(self) -> str:
		return f"You've reached your daily limit of {self.limit} deghibs. Please try again tomorrow."
