"""
In-process adapters for the journey engine's collaborator ports.

``StaticPolicyLookup`` is a dict-backed PolicyLookup, suitable for policies
loaded from YAML.  ``RecordingBoardProjection`` keeps created cards in
memory; it backs tests and local runs where no board is reachable.
Production board clients implement BoardProjectionPort the same way.
"""

from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Iterable

from journey_kernel.domain.ports import CardRequest, PolicyInfo


class StaticPolicyLookup:
    """PolicyLookup backed by a dict keyed by policy code."""

    def __init__(self, policies: Iterable[PolicyInfo] | None = None) -> None:
        self._policies: dict[str, PolicyInfo] = {}
        for policy in policies or ():
            self.register(policy)

    def register(self, policy: PolicyInfo) -> None:
        self._policies[policy.code] = policy

    def find_by_code(self, code: str) -> PolicyInfo | None:
        return self._policies.get(code)


class RecordingBoardProjection:
    """BoardProjectionPort that records cards instead of calling a board.

    ``fail_with`` makes every call raise that exception; ``delay_seconds``
    slows each call down, for exercising projection timeouts.
    """

    def __init__(
        self,
        fail_with: Exception | None = None,
        delay_seconds: float = 0.0,
        id_prefix: str = "card",
    ) -> None:
        self.fail_with = fail_with
        self.delay_seconds = delay_seconds
        self.cards: dict[str, CardRequest] = {}
        self._ids = itertools.count(1)
        self._prefix = id_prefix
        self._lock = threading.Lock()

    def create_card(self, request: CardRequest) -> str:
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            card_id = f"{self._prefix}-{next(self._ids)}"
            self.cards[card_id] = request
        return card_id
