"""ORM models for the journey kernel."""

from journey_kernel.models.approval import ApprovalRequestModel
from journey_kernel.models.definition import (
    DEFINITION_CONTENT_COLUMNS,
    JourneyDefinitionModel,
)
from journey_kernel.models.instance import JourneyInstanceModel
from journey_kernel.models.transition_log import TransitionLogModel

__all__ = [
    "ApprovalRequestModel",
    "DEFINITION_CONTENT_COLUMNS",
    "JourneyDefinitionModel",
    "JourneyInstanceModel",
    "TransitionLogModel",
]
