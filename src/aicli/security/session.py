"""Per-process approval cache.

Approvals recorded here last until the process exits. Nothing is written to
disk, so every CLI invocation starts with an empty cache.
"""

import itertools
import logging

from pydantic import BaseModel, ConfigDict, Field

from aicli.security.classifier import RiskTier

logger = logging.getLogger(__name__)


class SessionApproval(BaseModel):
    """An approval granted for a risk tier within the current process."""

    model_config = ConfigDict(frozen=True)

    tier: RiskTier = Field(..., description="Approved risk tier")
    granted_at: int = Field(..., description="In-process sequence number of the grant")


class SessionApprovalCache:
    """Mapping from risk tier to session approval.

    DANGEROUS approvals are never cached: every dangerous command needs a
    fresh confirmation.
    """

    def __init__(self):
        self._approvals: dict[RiskTier, SessionApproval] = {}
        self._counter = itertools.count(1)

    def is_approved(self, tier: RiskTier) -> bool:
        """Check whether a tier has been approved for this session.

        Args:
            tier: Risk tier to check

        Returns:
            bool: True if approved (always False for DANGEROUS)
        """
        if tier is RiskTier.DANGEROUS:
            return False
        return tier in self._approvals

    def approve(self, tier: RiskTier) -> SessionApproval | None:
        """Record an approval for the rest of the process.

        Args:
            tier: Risk tier to approve

        Returns:
            SessionApproval | None: The recorded approval, or None for DANGEROUS
        """
        if tier is RiskTier.DANGEROUS:
            logger.debug("Refusing to cache a session approval for dangerous commands")
            return None

        approval = SessionApproval(tier=tier, granted_at=next(self._counter))
        self._approvals[tier] = approval
        logger.info(f"Approved all {tier.value} commands for this session (grant #{approval.granted_at})")
        return approval

    def clear(self) -> None:
        """Drop every session approval."""
        self._approvals.clear()

    def __len__(self) -> int:
        return len(self._approvals)
