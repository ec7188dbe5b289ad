"""Approval handler for interactive confirmation of gated commands.

This module provides the ApprovalHandler which shows a proposed command with
its risk assessment and collects the user's answer. Refusal, empty input,
EOF and Ctrl-C all count as a decline.
"""

import logging
from enum import Enum

from rich.panel import Panel
from rich.text import Text

from aicli.logging import AUDIT_LOGGER
from aicli.security.classifier import CommandClassifier, RiskTier
from aicli.security.gate import ApprovalRequest
from aicli.ui.console import AICliConsole
from aicli.ui.prompts import choose, confirm, prompt

logger = logging.getLogger(__name__)
audit = logging.getLogger(AUDIT_LOGGER)

DANGEROUS_CONFIRMATION = "YES"


class ApprovalChoice(str, Enum):
    """The user's answer to an approval prompt."""

    APPROVE = "approve"
    DECLINE = "decline"
    EDIT = "edit"


class ApprovalHandler:
    """Handler for presenting approval prompts to the user.

    CAUTION commands need a yes/no answer (optionally "edit"). DANGEROUS
    commands need the literal word YES typed out.
    """

    def __init__(
        self,
        console: AICliConsole,
        classifier: CommandClassifier | None = None,
    ):
        """Initialize the approval handler.

        Args:
            console: Console for user interaction
            classifier: Classifier used for risk factors (creates default if None)
        """
        self.console = console
        self.classifier = classifier or CommandClassifier()

    async def request_approval(
        self,
        request: ApprovalRequest,
        allow_edit: bool = False,
    ) -> ApprovalChoice:
        """Ask the user whether a command may run.

        Args:
            request: Gate request awaiting confirmation
            allow_edit: Offer an "edit and retry" answer

        Returns:
            ApprovalChoice: The user's answer
        """
        tier = request.tier or RiskTier.DANGEROUS
        panel = self.format_approval_prompt(request.command, tier)
        self.console.console.print(panel)

        try:
            if tier is RiskTier.DANGEROUS:
                choice = self._ask_dangerous()
            elif allow_edit:
                choice = self._ask_with_edit()
            else:
                approved = confirm(
                    "Execute this command?",
                    default=False,
                    console=self.console.console,
                )
                choice = ApprovalChoice.APPROVE if approved else ApprovalChoice.DECLINE
        except (KeyboardInterrupt, EOFError):
            self.console.console.print()
            logger.info(f"Approval prompt for request #{request.id} interrupted")
            choice = ApprovalChoice.DECLINE

        audit.info(f"User answered {choice.value} for request #{request.id}: {request.command!r}")
        return choice

    def ask_replacement(self, label: str = "Enter custom commit message") -> str | None:
        """Ask for replacement text after an "edit" answer.

        Returns:
            str | None: Stripped text, or None if empty or interrupted
        """
        try:
            text = prompt(label, default="", console=self.console.console)
        except (KeyboardInterrupt, EOFError):
            return None
        return text.strip() or None

    def _ask_dangerous(self) -> ApprovalChoice:
        self.console.console.print(
            "\n[red bold]🚨 This command may cause irreversible damage.[/red bold]"
        )
        answer = prompt(
            f"Type '{DANGEROUS_CONFIRMATION}' to confirm",
            default="",
            console=self.console.console,
        )
        if answer.strip() == DANGEROUS_CONFIRMATION:
            return ApprovalChoice.APPROVE
        return ApprovalChoice.DECLINE

    def _ask_with_edit(self) -> ApprovalChoice:
        answer = choose(
            "Your choice",
            {
                "y": "Execute this command (and similar commands for this session)",
                "n": "Cancel execution",
                "e": "Edit and retry",
            },
            default="n",
            console=self.console.console,
        )
        return {
            "y": ApprovalChoice.APPROVE,
            "e": ApprovalChoice.EDIT,
        }.get(answer, ApprovalChoice.DECLINE)

    def format_approval_prompt(self, command: str, tier: RiskTier) -> Panel:
        """Format an approval prompt as a Rich Panel.

        Args:
            command: Command to execute
            tier: Risk tier of the command

        Returns:
            Panel: Formatted approval prompt
        """
        risk_color = self.classifier.get_risk_color(tier)
        risk_emoji = self.classifier.get_risk_emoji(tier)

        content = Text()

        content.append("💻 Command: ", style="bold")
        content.append(f"{command}\n\n", style="cyan bold")

        content.append(f"{risk_emoji} Risk Tier: ", style="bold")
        content.append(f"{tier.value.upper()}\n\n", style=risk_color)

        factors = self.classifier.risk_factors(command)
        if factors:
            content.append("This command:\n", style="bold")
            for factor in factors:
                content.append(f"  • {factor}\n", style="dim")

        return Panel(
            content,
            title=f"[bold]{risk_emoji} Approval Required[/bold]",
            border_style=risk_color,
            padding=(1, 2),
        )
