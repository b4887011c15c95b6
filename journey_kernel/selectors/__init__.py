"""Read-only selectors over journey data."""

from journey_kernel.selectors.approval_selector import ApprovalSelector
from journey_kernel.selectors.base import BaseSelector
from journey_kernel.selectors.instance_selector import InstanceSelector
from journey_kernel.selectors.transition_log_selector import TransitionLogSelector

__all__ = [
    "ApprovalSelector",
    "BaseSelector",
    "InstanceSelector",
    "TransitionLogSelector",
]
