"""
Collaborator ports (``journey_kernel.domain.ports``).

Protocols for the two external systems the journey engine talks to.
Adapters live in ``journey_services.adapters``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class PolicyInfo:
    """Governance policy as seen by the approval gate.

    ``blocking=False`` means the policy is advisory and the gated
    transition may apply without waiting for a decision.
    """

    code: str
    pipeline_id: str | None = None
    blocking: bool = True


@dataclass(frozen=True)
class CardRequest:
    """A card to create on the external board."""

    tenant_id: str
    pipeline_id: str
    title: str
    description: str = ""
    priority: str = "MEDIUM"
    metadata: dict[str, Any] = field(default_factory=dict)


class PolicyLookup(Protocol):
    """Resolves a policy code to its pipeline and blocking flag."""

    def find_by_code(self, code: str) -> PolicyInfo | None:
        ...


class BoardProjectionPort(Protocol):
    """Creates cards on the external kanban board.

    Implementations may raise anything; the approval gate treats every
    failure as non-fatal.
    """

    def create_card(self, request: CardRequest) -> str:
        """Create the card and return its external id."""
        ...
