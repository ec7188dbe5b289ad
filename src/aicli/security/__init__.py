"""Trust and approval system for gated command execution.

This package provides command risk classification, the persistent trusted
folder store, the per-process approval cache, the approval gate state
machine and the interactive approval handler.
"""

from aicli.security.classifier import (
    ClassificationRule,
    CommandClassifier,
    DEFAULT_RULES,
    RiskTier,
)
from aicli.security.gate import (
    ApprovalGate,
    ApprovalRequest,
    Decision,
    DecisionKind,
    DenyReason,
    GateState,
    decide,
)
from aicli.security.handler import ApprovalChoice, ApprovalHandler
from aicli.security.session import SessionApproval, SessionApprovalCache
from aicli.security.trust import TrustEntry, TrustStore

__all__ = [
    "ApprovalChoice",
    "ApprovalGate",
    "ApprovalHandler",
    "ApprovalRequest",
    "ClassificationRule",
    "CommandClassifier",
    "DEFAULT_RULES",
    "Decision",
    "DecisionKind",
    "DenyReason",
    "GateState",
    "RiskTier",
    "SessionApproval",
    "SessionApprovalCache",
    "TrustEntry",
    "TrustStore",
    "decide",
]
