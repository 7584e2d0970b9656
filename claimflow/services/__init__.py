"""
Services Layer for the Claim Lifecycle Engine.

Exports the state machine, validation, submission, lifecycle, tracking and
aging services plus the engine factory that wires them together.
"""

from claimflow.services.claim_state_machine import (
    ClaimStateMachine,
    TransitionContext,
    TransitionEvent,
    TransitionResult,
    get_claim_state_machine,
    get_status_label,
    get_transition_options,
    is_terminal_status,
)
from claimflow.services.claim_validation import (
    ClaimValidationResult,
    ClaimValidationService,
    ClaimValidator,
    ValidationContext,
    ValidationIssue,
    get_claim_validation_service,
)
from claimflow.services.clearinghouse import (
    ClearinghouseGateway,
    DemoClearinghouseAdapter,
    HttpClearinghouseAdapter,
    StatusResponse,
    create_clearinghouse_gateway,
)
from claimflow.services.authorization import (
    AuthorizationService,
    DatabaseAuthorizationService,
    get_authorization_service,
)
from claimflow.services.notifications import (
    ClaimNotification,
    LoggingNotifier,
    NotificationType,
)
from claimflow.services.claim_store import ClaimStore
from claimflow.services.dependencies import (
    ClaimEngine,
    ClaimEngineDeps,
    build_claim_engine,
    get_claim_engine,
)
from claimflow.services.claims_service import ClaimCreateDTO, ClaimsService, ClaimUpdateDTO
from claimflow.services.claim_submission import (
    BatchValidationResult,
    ClaimSubmissionService,
    RefreshOutcome,
)
from claimflow.services.claim_lifecycle import AdjustmentClaimDTO, ClaimLifecycleService
from claimflow.services.claim_aging import (
    AgingReport,
    ClaimAgingService,
    ClaimMetrics,
    RiskAssessment,
    assess_aging_risk,
)
from claimflow.services.claim_tracking import ClaimTrackingService, TimelineEntry

__all__ = [
    # State machine
    "ClaimStateMachine",
    "TransitionContext",
    "TransitionEvent",
    "TransitionResult",
    "get_claim_state_machine",
    "get_status_label",
    "get_transition_options",
    "is_terminal_status",
    # Validation
    "ClaimValidationResult",
    "ClaimValidationService",
    "ClaimValidator",
    "ValidationContext",
    "ValidationIssue",
    "get_claim_validation_service",
    # Integrations
    "ClearinghouseGateway",
    "DemoClearinghouseAdapter",
    "HttpClearinghouseAdapter",
    "StatusResponse",
    "create_clearinghouse_gateway",
    "AuthorizationService",
    "DatabaseAuthorizationService",
    "get_authorization_service",
    "ClaimNotification",
    "LoggingNotifier",
    "NotificationType",
    # Engine
    "ClaimStore",
    "ClaimEngine",
    "ClaimEngineDeps",
    "build_claim_engine",
    "get_claim_engine",
    "ClaimCreateDTO",
    "ClaimsService",
    "ClaimUpdateDTO",
    "BatchValidationResult",
    "ClaimSubmissionService",
    "RefreshOutcome",
    "AdjustmentClaimDTO",
    "ClaimLifecycleService",
    "AgingReport",
    "ClaimAgingService",
    "ClaimMetrics",
    "RiskAssessment",
    "assess_aging_risk",
    "ClaimTrackingService",
    "TimelineEntry",
]
