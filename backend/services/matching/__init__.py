"""
Candidate matching and request dispatch.

This module handles:
    - Finding available mechanics near a request that offer its service
    - Splitting candidates by live presence
    - Fanning out offers over live channels and email
"""

from .candidate_index import candidate_rank, find_candidates
from .dispatch import (
    DispatchReport,
    adispatch_service_request,
    dispatch_service_request,
    partition_by_presence,
    schedule_dispatch,
)
from .fanout import DeliveryFailure, fan_out

__all__ = [
    "candidate_rank",
    "find_candidates",
    "DispatchReport",
    "adispatch_service_request",
    "dispatch_service_request",
    "partition_by_presence",
    "schedule_dispatch",
    "DeliveryFailure",
    "fan_out",
]
