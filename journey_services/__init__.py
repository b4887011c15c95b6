"""Journey services: coordinators that sit above the kernel."""

from journey_services.adapters import RecordingBoardProjection, StaticPolicyLookup
from journey_services.command_resolver import CommandResolver
from journey_services.journey_orchestrator import JourneyOrchestrator
from journey_services.trigger_executor import TriggerExecutor

__all__ = [
    "CommandResolver",
    "JourneyOrchestrator",
    "RecordingBoardProjection",
    "StaticPolicyLookup",
    "TriggerExecutor",
]
