"""Kernel services: definition store, transition engine, approval gate."""

from journey_kernel.services.approval_gate import ApprovalGate
from journey_kernel.services.base import BaseService
from journey_kernel.services.definition_service import (
    JourneyDefinitionService,
    JourneyGraphCache,
    default_graph_cache,
)
from journey_kernel.services.transition_engine import TransitionEngine

__all__ = [
    "ApprovalGate",
    "BaseService",
    "JourneyDefinitionService",
    "JourneyGraphCache",
    "default_graph_cache",
    "TransitionEngine",
]
