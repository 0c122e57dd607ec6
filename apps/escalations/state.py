"""
Escalation state: duplicate suppression and cancellation.

State is kept per (template, record) pair, called an episode. An episode
has a generation counter; each EscalationInstance belongs to one
generation and is keyed by level and recipient. Cancelling an episode is
terminal for its generation. Starting a new generation is the only way a
cancelled pair escalates again.

Every check-then-act happens under a per-pair lock:

    claim()    cancelled? sent inside the window? already in flight?
               otherwise mark the instance as in flight
    (deliver without holding the lock)
    release()  clear the in-flight mark; refresh last_sent_at on success

The database-backed implementation lives in stores.py.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class ClaimStatus:
    CLAIMED = 'claimed'
    DUPLICATE = 'duplicate'
    CANCELLED = 'cancelled'


@dataclass(frozen=True)
class EscalationKey:
    template_id: str
    record_id: str
    level: int
    recipient_key: str

    @property
    def pair(self):
        return (self.template_id, self.record_id)


@dataclass(frozen=True)
class Claim:
    status: str
    generation: int = 1

    @property
    def granted(self):
        return self.status == ClaimStatus.CLAIMED


@dataclass(frozen=True)
class InstanceState:
    template_id: str
    record_id: str
    generation: int
    level: int
    recipient_key: str
    last_sent_at: Optional[datetime]
    cancelled: bool


def decide_claim(cancelled, last_sent_at, claimed_at, now, window, claim_timeout):
    """Shared claim decision for all store implementations."""
    if cancelled:
        return ClaimStatus.CANCELLED
    if last_sent_at is not None and now - last_sent_at < window:
        return ClaimStatus.DUPLICATE
    if claimed_at is not None and now - claimed_at < claim_timeout:
        return ClaimStatus.DUPLICATE
    return ClaimStatus.CLAIMED


class EscalationStateStore(ABC):
    """Interface injected into the orchestrator."""

    @abstractmethod
    def claim(self, key, now, window, claim_timeout):
        """Atomically decide whether `key` may be dispatched and mark it in flight."""

    @abstractmethod
    def release(self, key, claim, now, delivered):
        """Clear the in-flight mark; refresh last_sent_at when delivered."""

    @abstractmethod
    def cancel(self, template_id, record_id, now):
        """
        Cancel the pair's current episode. True only for the call that cancelled it.

        A pair with no episode yet gets one that starts out cancelled, so a
        record completed before its first escalation stays quiet if reopened.
        That call returns False: there was nothing in flight to cancel.
        """

    @abstractmethod
    def cancel_record(self, record_id, now):
        """Cancel every open episode of a record. Returns the cancelled template ids."""

    @abstractmethod
    def is_cancelled(self, template_id, record_id):
        """Whether the pair's current episode is cancelled."""

    @abstractmethod
    def start_new_episode(self, template_id, record_id):
        """Begin a new generation for a cancelled pair. Returns the generation."""

    @abstractmethod
    def evict(self, cutoff):
        """Delete non-cancelled, idle instances last sent before `cutoff`."""

    @abstractmethod
    def snapshot(self, template_id, record_id):
        """List InstanceState for the pair (all generations)."""


# =============================================================================
# In-memory implementation
# =============================================================================

class _Instance:
    __slots__ = ('last_sent_at', 'claimed_at', 'cancelled')

    def __init__(self):
        self.last_sent_at = None
        self.claimed_at = None
        self.cancelled = False


class _Episode:
    __slots__ = ('generation', 'cancelled', 'cancelled_at', 'instances', 'lock')

    def __init__(self):
        self.generation = 1
        self.cancelled = False
        self.cancelled_at = None
        self.instances = {}  # (generation, level, recipient_key) -> _Instance
        self.lock = threading.Lock()


class InMemoryEscalationStateStore(EscalationStateStore):
    """Thread-safe store for a single process; one lock per (template, record) pair."""

    def __init__(self):
        self._guard = threading.Lock()
        self._episodes = {}

    def _episode(self, pair, create=True):
        with self._guard:
            episode = self._episodes.get(pair)
            if episode is None and create:
                episode = self._episodes[pair] = _Episode()
            return episode

    def _all_episodes(self):
        with self._guard:
            return list(self._episodes.items())

    def claim(self, key, now, window, claim_timeout):
        episode = self._episode(key.pair)
        with episode.lock:
            instance_key = (episode.generation, key.level, key.recipient_key)
            instance = episode.instances.get(instance_key)
            status = decide_claim(
                episode.cancelled,
                instance.last_sent_at if instance else None,
                instance.claimed_at if instance else None,
                now, window, claim_timeout,
            )
            if status == ClaimStatus.CLAIMED:
                if instance is None:
                    instance = episode.instances[instance_key] = _Instance()
                instance.claimed_at = now
            return Claim(status=status, generation=episode.generation)

    def release(self, key, claim, now, delivered):
        episode = self._episode(key.pair)
        with episode.lock:
            instance = episode.instances.get((claim.generation, key.level, key.recipient_key))
            if instance is None:
                return
            instance.claimed_at = None
            if delivered:
                instance.last_sent_at = now

    def cancel(self, template_id, record_id, now):
        pair = (template_id, record_id)
        with self._guard:
            episode = self._episodes.get(pair)
            if episode is None:
                episode = self._episodes[pair] = _Episode()
                episode.cancelled = True
                episode.cancelled_at = now
                return False
        with episode.lock:
            if episode.cancelled:
                return False
            episode.cancelled = True
            episode.cancelled_at = now
            for (generation, _level, _recipient), instance in episode.instances.items():
                if generation == episode.generation:
                    instance.cancelled = True
            return True

    def cancel_record(self, record_id, now):
        cancelled = []
        for (template_id, episode_record_id), _episode in self._all_episodes():
            if episode_record_id == record_id and self.cancel(template_id, record_id, now):
                cancelled.append(template_id)
        return cancelled

    def is_cancelled(self, template_id, record_id):
        episode = self._episode((template_id, record_id), create=False)
        if episode is None:
            return False
        with episode.lock:
            return episode.cancelled

    def start_new_episode(self, template_id, record_id):
        episode = self._episode((template_id, record_id))
        with episode.lock:
            if episode.cancelled:
                episode.generation += 1
                episode.cancelled = False
                episode.cancelled_at = None
            return episode.generation

    def evict(self, cutoff):
        evicted = 0
        for _pair, episode in self._all_episodes():
            with episode.lock:
                stale = [
                    instance_key for instance_key, instance in episode.instances.items()
                    if not instance.cancelled
                    and instance.claimed_at is None
                    and instance.last_sent_at is not None
                    and instance.last_sent_at < cutoff
                ]
                for instance_key in stale:
                    del episode.instances[instance_key]
                evicted += len(stale)
        return evicted

    def snapshot(self, template_id, record_id):
        episode = self._episode((template_id, record_id), create=False)
        if episode is None:
            return []
        with episode.lock:
            return [
                InstanceState(
                    template_id=template_id,
                    record_id=record_id,
                    generation=generation,
                    level=level,
                    recipient_key=recipient_key,
                    last_sent_at=instance.last_sent_at,
                    cancelled=instance.cancelled,
                )
                for (generation, level, recipient_key), instance in sorted(
                    episode.instances.items(), key=lambda item: item[0]
                )
            ]
