"""Gated command execution.

This module provides the CommandExecutor which runs a proposed command only
after the approval gate allows it:

1. Evaluate the command (classification, trust, session cache)
2. Ask the user when the decision is PROMPT_USER
3. Resolve the decision through the gate
4. Execute (argument list, no shell) and report the result
"""

import asyncio
import shlex
from pathlib import Path

from pydantic import BaseModel, Field

from aicli.exceptions import TrustViolationError, UserDeclined
from aicli.logging import Timer, get_logger
from aicli.security import (
    ApprovalChoice,
    ApprovalGate,
    ApprovalHandler,
    ApprovalRequest,
    Decision,
    RiskTier,
)
from aicli.ui.console import AICliConsole

logger = get_logger("aicli.executor")


class CommandResult(BaseModel):
    """Outcome of a gated command."""

    command: str = Field(..., description="Command text as classified")
    request_id: int = Field(..., description="Gate request id")
    decision: Decision = Field(..., description="Final gate decision")
    executed: bool = Field(default=False)
    returncode: int | None = Field(default=None)
    stdout: str = Field(default="")
    stderr: str = Field(default="")
    edit_requested: bool = Field(
        default=False,
        description="The user asked to edit and retry instead of answering",
    )

    @property
    def success(self) -> bool:
        return self.executed and self.returncode == 0

    @classmethod
    def not_executed(cls, request: ApprovalRequest, edit_requested: bool = False) -> "CommandResult":
        return cls(
            command=request.command,
            request_id=request.id,
            decision=request.decision,
            edit_requested=edit_requested,
        )


class CommandExecutor:
    """Runs commands through the approval gate.

    Attributes:
        gate: Approval gate shared by every command of the invocation
        handler: Interactive approval handler
        console: Console for progress and results
        assume_yes: Pre-answer CAUTION prompts (never DANGEROUS ones)
    """

    def __init__(
        self,
        gate: ApprovalGate,
        handler: ApprovalHandler,
        console: AICliConsole,
        assume_yes: bool = False,
    ):
        """Initialize the executor.

        Args:
            gate: Approval gate
            handler: Handler for user approvals
            console: Console for displaying execution progress
            assume_yes: Answer CAUTION prompts in advance for this invocation
        """
        self.gate = gate
        self.handler = handler
        self.console = console
        self.assume_yes = assume_yes

    async def execute(
        self,
        argv: list[str],
        cwd: Path,
        allow_edit: bool = False,
    ) -> CommandResult:
        """Gate and run a command.

        Args:
            argv: Program and arguments
            cwd: Working directory
            allow_edit: Offer "edit and retry" at the prompt

        Returns:
            CommandResult: Result, with ``executed`` False when denied

        Raises:
            ConfigError: If the trust store cannot be read
        """
        result, request = await self._authorize(argv, cwd, allow_edit)
        if request is None:
            return result
        return await self._run(request, argv, cwd)

    async def authorize(self, argv: list[str], cwd: Path) -> CommandResult:
        """Gate a command the caller will start itself.

        Used for long-lived processes such as an MCP server, which are not
        run to completion by ``execute``.

        Returns:
            CommandResult: ``decision.should_execute`` tells whether the
            command may be started; ``executed`` is always False

        Raises:
            ConfigError: If the trust store cannot be read
        """
        result, _ = await self._authorize(argv, cwd, allow_edit=False)
        return result

    async def _authorize(
        self,
        argv: list[str],
        cwd: Path,
        allow_edit: bool,
    ) -> tuple[CommandResult, ApprovalRequest | None]:
        command = shlex.join(argv)
        request = self.gate.evaluate(command, cwd)
        choice: ApprovalChoice | None = None

        if request.awaiting_confirmation:
            if self.assume_yes and request.tier is RiskTier.CAUTION:
                logger.info("Confirmation pre-answered by --yes", request_id=request.id)
                choice = ApprovalChoice.APPROVE
            else:
                choice = await self.handler.request_approval(request, allow_edit=allow_edit)
            self.gate.confirm(request, choice is ApprovalChoice.APPROVE)

        try:
            request.raise_if_denied()
        except UserDeclined:
            if choice is not ApprovalChoice.EDIT:
                self.console.warning("Command cancelled by user.")
            return CommandResult.not_executed(request, edit_requested=choice is ApprovalChoice.EDIT), None
        except TrustViolationError as e:
            self.console.error(f"{e}. Run 'ai-cli trust add' to allow changes here.")
            return CommandResult.not_executed(request), None

        return CommandResult.not_executed(request), request

    async def _run(self, request: ApprovalRequest, argv: list[str], cwd: Path) -> CommandResult:
        logger.info("Executing command", request_id=request.id, command=request.command)

        try:
            async with Timer(f"run({argv[0]})", logger):
                proc = await asyncio.create_subprocess_exec(
                    *argv,
                    cwd=cwd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
                stdout, stderr = await proc.communicate()
        except FileNotFoundError:
            message = f"Command not found: {argv[0]}"
            logger.error(message, request_id=request.id)
            self.console.error(message)
            return CommandResult(
                command=request.command,
                request_id=request.id,
                decision=request.decision,
                executed=False,
                returncode=127,
                stderr=message,
            )

        result = CommandResult(
            command=request.command,
            request_id=request.id,
            decision=request.decision,
            executed=True,
            returncode=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

        if result.success:
            logger.info("Command succeeded", request_id=request.id)
            self.console.command_output(result.stdout)
        else:
            logger.error("Command failed", request_id=request.id, returncode=result.returncode)
            self.console.command_output(result.stdout)
            self.console.error(f"Command exited with status {result.returncode}")
            self.console.command_output(result.stderr)

        return result
