"""
Proposal Lifecycle Manager

CONTRACT:
    Input:  user id + ProposalDraft
    Output: ProposalCreated | ProposalBlocked

RESPONSIBILITIES:
    - Create a pending proposal (15 minute expiry) only after risk validation passes
    - Approve / reject pending proposals, expiring them lazily when overdue
    - Re-check blind spots when approving an older proposal
    - Execute approved proposals through the broker client, no automatic retry
    - Keep execution records and a system event trail

CRITICAL: Terminal states are permanent.
Blocked proposals are never persisted.
"""

from app.services.proposals.interface import ProposalServiceInterface, ProposeTradeInput
from app.services.proposals.service import (
    VALID_TRANSITIONS,
    ProposalLifecycleManager,
    build_order_request,
    can_transition,
    close_proposal_service,
    get_proposal_service,
    is_terminal,
)

__all__ = [
    "ProposalServiceInterface",
    "ProposeTradeInput",
    "ProposalLifecycleManager",
    "VALID_TRANSITIONS",
    "build_order_request",
    "can_transition",
    "is_terminal",
    "get_proposal_service",
    "close_proposal_service",
]
