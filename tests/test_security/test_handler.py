"""Tests for the interactive approval handler."""

import pytest
from rich.panel import Panel

from aicli.security import ApprovalChoice, ApprovalGate, ApprovalHandler, RiskTier
from aicli.ui.console import AICliConsole


@pytest.fixture
def console():
    return AICliConsole(no_color=True)


@pytest.fixture
def handler(console):
    return ApprovalHandler(console)


@pytest.fixture
def pending(trust_store, tmp_path):
    """Factory for requests awaiting confirmation in a trusted folder."""
    trust_store.trust(tmp_path)
    gate = ApprovalGate(trust_store)

    def make(command: str):
        request = gate.evaluate(command, tmp_path)
        assert request.awaiting_confirmation
        return request

    return make


def _answer(monkeypatch, *answers):
    """Feed answers to Rich prompts."""
    replies = iter(answers)

    def fake_input(*args, **kwargs):
        reply = next(replies)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    monkeypatch.setattr("rich.console.Console.input", fake_input)


class TestApprovalHandler:
    """Test ApprovalHandler prompts."""

    @pytest.mark.asyncio
    async def test_caution_yes(self, handler, pending, monkeypatch):
        _answer(monkeypatch, "y")

        choice = await handler.request_approval(pending("git add -A"))

        assert choice is ApprovalChoice.APPROVE

    @pytest.mark.asyncio
    async def test_caution_no(self, handler, pending, monkeypatch):
        _answer(monkeypatch, "n")

        choice = await handler.request_approval(pending("git add -A"))

        assert choice is ApprovalChoice.DECLINE

    @pytest.mark.asyncio
    async def test_caution_empty_input_declines(self, handler, pending, monkeypatch):
        _answer(monkeypatch, "")

        choice = await handler.request_approval(pending("git add -A"))

        assert choice is ApprovalChoice.DECLINE

    @pytest.mark.asyncio
    async def test_edit_choice(self, handler, pending, monkeypatch):
        _answer(monkeypatch, "e")

        choice = await handler.request_approval(pending("git commit -m 'x'"), allow_edit=True)

        assert choice is ApprovalChoice.EDIT

    @pytest.mark.asyncio
    async def test_dangerous_requires_literal_yes(self, handler, pending, monkeypatch):
        _answer(monkeypatch, "y")

        choice = await handler.request_approval(pending("git push --force"))

        assert choice is ApprovalChoice.DECLINE

    @pytest.mark.asyncio
    async def test_dangerous_confirmed(self, handler, pending, monkeypatch):
        _answer(monkeypatch, "YES")

        choice = await handler.request_approval(pending("git push --force"))

        assert choice is ApprovalChoice.APPROVE

    @pytest.mark.asyncio
    async def test_dangerous_never_offers_edit(self, handler, pending, monkeypatch):
        _answer(monkeypatch, "e")

        choice = await handler.request_approval(pending("git push --force"), allow_edit=True)

        assert choice is ApprovalChoice.DECLINE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [KeyboardInterrupt(), EOFError()])
    async def test_interrupt_declines(self, handler, pending, monkeypatch, error):
        _answer(monkeypatch, error)

        choice = await handler.request_approval(pending("git push --force"))

        assert choice is ApprovalChoice.DECLINE

    def test_ask_replacement(self, handler, monkeypatch):
        _answer(monkeypatch, "  fix: typo  ")

        assert handler.ask_replacement() == "fix: typo"

    def test_ask_replacement_empty(self, handler, monkeypatch):
        _answer(monkeypatch, "   ")

        assert handler.ask_replacement() is None

    def test_ask_replacement_interrupted(self, handler, monkeypatch):
        _answer(monkeypatch, EOFError())

        assert handler.ask_replacement() is None


class TestApprovalPanel:
    """Test the approval prompt rendering."""

    def test_format_approval_prompt(self, handler):
        panel = handler.format_approval_prompt("git push --force", RiskTier.DANGEROUS)

        assert isinstance(panel, Panel)
        assert panel.border_style == "red bold"
        text = panel.renderable.plain
        assert "git push --force" in text
        assert "DANGEROUS" in text
        assert "Force push overwrites remote history" in text
