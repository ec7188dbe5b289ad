"""Approval gate deciding whether a proposed command may run.

The gate is an explicit state machine. Each proposed command becomes an
ApprovalRequest that moves START -> CLASSIFIED -> DECIDED. The decision
itself is a pure function of the risk tier, the folder's trust and the
session cache, evaluated in a fixed order:

1. DANGEROUS always prompts, whatever the trust or cache state.
2. Mutating commands in untrusted folders are denied.
3. CAUTION prompts unless already approved this session.
4. Everything else executes.
"""

import itertools
import logging
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from aicli.exceptions import TrustViolationError, UserDeclined
from aicli.logging import AUDIT_LOGGER
from aicli.security.classifier import CommandClassifier, RiskTier
from aicli.security.session import SessionApprovalCache
from aicli.security.trust import TrustStore

logger = logging.getLogger(__name__)
audit = logging.getLogger(AUDIT_LOGGER)


class DecisionKind(str, Enum):
    """Outcome of the approval gate."""

    EXECUTE = "execute"
    PROMPT_USER = "prompt_user"
    DENY = "deny"


class DenyReason(str, Enum):
    """Why a command was denied."""

    USER_DECLINED = "user_declined"
    UNTRUSTED_DIRECTORY = "untrusted_directory"


class GateState(str, Enum):
    """Lifecycle of an approval request."""

    START = "start"
    CLASSIFIED = "classified"
    DECIDED = "decided"


class Decision(BaseModel):
    """Result of the approval gate."""

    kind: DecisionKind = Field(..., description="Execute, prompt the user, or deny")
    tier: RiskTier = Field(..., description="Risk tier of the command")
    reason: DenyReason | None = Field(default=None, description="Set for DENY decisions")

    @classmethod
    def execute(cls, tier: RiskTier) -> "Decision":
        return cls(kind=DecisionKind.EXECUTE, tier=tier)

    @classmethod
    def prompt_user(cls, tier: RiskTier) -> "Decision":
        return cls(kind=DecisionKind.PROMPT_USER, tier=tier)

    @classmethod
    def deny(cls, tier: RiskTier, reason: DenyReason) -> "Decision":
        return cls(kind=DecisionKind.DENY, tier=tier, reason=reason)

    @property
    def should_execute(self) -> bool:
        return self.kind is DecisionKind.EXECUTE

    @property
    def needs_confirmation(self) -> bool:
        return self.kind is DecisionKind.PROMPT_USER

    def __str__(self) -> str:
        if self.reason is not None:
            return f"{self.kind.value}({self.reason.value})"
        return self.kind.value


def decide(tier: RiskTier, *, trusted: bool, session_approved: bool) -> Decision:
    """Decide what to do with a classified command.

    Args:
        tier: Risk tier of the command
        trusted: Whether the working directory is trusted
        session_approved: Whether the tier was approved earlier in this process

    Returns:
        Decision: EXECUTE, PROMPT_USER or DENY
    """
    if tier is RiskTier.DANGEROUS:
        return Decision.prompt_user(tier)

    if not trusted and tier.is_mutating:
        return Decision.deny(tier, DenyReason.UNTRUSTED_DIRECTORY)

    if tier is RiskTier.CAUTION and not session_approved:
        return Decision.prompt_user(tier)

    return Decision.execute(tier)


class ApprovalRequest(BaseModel):
    """A proposed command moving through the gate."""

    id: int = Field(..., description="Sequence number within this process")
    command: str = Field(..., description="Command text as shown to the user")
    cwd: Path = Field(..., description="Directory the command would run in")
    state: GateState = Field(default=GateState.START)
    tier: RiskTier | None = Field(default=None)
    decision: Decision | None = Field(default=None)
    confirmed: bool | None = Field(
        default=None,
        description="User answer, set only when the request was prompted",
    )

    @property
    def awaiting_confirmation(self) -> bool:
        return (
            self.state is GateState.DECIDED
            and self.decision is not None
            and self.decision.needs_confirmation
            and self.confirmed is None
        )

    def raise_if_denied(self) -> None:
        """Raise the matching error for a DENY decision.

        Raises:
            UserDeclined: If the user refused the command
            TrustViolationError: If the folder is not trusted
        """
        if self.decision is None or self.decision.kind is not DecisionKind.DENY:
            return
        if self.decision.reason is DenyReason.UNTRUSTED_DIRECTORY:
            raise TrustViolationError(self.cwd)
        raise UserDeclined(self.command)


class ApprovalGate:
    """Combines the trust store, classifier and session cache into decisions.

    At most one request is in flight at a time; the CLI evaluates commands
    sequentially.
    """

    def __init__(
        self,
        trust_store: TrustStore,
        classifier: CommandClassifier | None = None,
        session: SessionApprovalCache | None = None,
    ):
        """Initialize the gate.

        Args:
            trust_store: Store of trusted folders
            classifier: Command classifier (creates default if None)
            session: Session approval cache (creates an empty one if None)
        """
        self.trust_store = trust_store
        self.classifier = classifier or CommandClassifier()
        self.session = session or SessionApprovalCache()
        self._ids = itertools.count(1)

    def evaluate(self, command: str, cwd: Path) -> ApprovalRequest:
        """Classify a command and decide what to do with it.

        Args:
            command: Command text
            cwd: Directory the command would run in

        Returns:
            ApprovalRequest: Request in the DECIDED state

        Raises:
            ConfigError: If the trust store cannot be read
        """
        request = ApprovalRequest(id=next(self._ids), command=command, cwd=cwd)

        request.tier = self.classifier.classify(command)
        request.state = GateState.CLASSIFIED

        # Read for DANGEROUS too: a corrupt store always surfaces.
        trusted = self.trust_store.is_trusted(cwd)
        request.decision = decide(
            request.tier,
            trusted=trusted,
            session_approved=self.session.is_approved(request.tier),
        )
        request.state = GateState.DECIDED

        audit.info(
            f"Gate request #{request.id}: {request.command!r} in {cwd} "
            f"tier={request.tier.value} trusted={trusted} decision={request.decision}"
        )
        return request

    def confirm(self, request: ApprovalRequest, confirmed: bool | None) -> Decision:
        """Resolve a PROMPT_USER decision with the user's answer.

        Args:
            request: Request awaiting confirmation
            confirmed: True to approve; False or None (no input) to decline

        Returns:
            Decision: EXECUTE or DENY(USER_DECLINED)

        Raises:
            ValueError: If the request is not awaiting confirmation
        """
        if not request.awaiting_confirmation:
            raise ValueError(f"Request #{request.id} is not awaiting confirmation")

        tier = request.tier
        request.confirmed = bool(confirmed)

        if request.confirmed:
            if tier is RiskTier.CAUTION:
                self.session.approve(tier)
            request.decision = Decision.execute(tier)
        else:
            request.decision = Decision.deny(tier, DenyReason.USER_DECLINED)

        audit.info(
            f"Gate request #{request.id}: user {'confirmed' if request.confirmed else 'declined'} "
            f"{request.command!r} -> {request.decision}"
        )
        return request.decision
