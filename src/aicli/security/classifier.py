"""Risk classification for proposed shell and Git commands.

This module provides the CommandClassifier which maps a command string to a
RiskTier. Classification is pattern-based over verbs and flags, total and
deterministic: anything the rules do not recognise is DANGEROUS.
"""

import logging
import re
import shlex
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field

from aicli.exceptions import ClassificationError

logger = logging.getLogger(__name__)


class RiskTier(str, Enum):
    """Risk tier of a candidate command.

    Tiers are ordered by their potential for irreversible effects.
    """

    SAFE = "safe"  # Read-only queries (auto-execute)
    CAUTION = "caution"  # Ordinary, recoverable mutations (confirm once per session)
    DANGEROUS = "dangerous"  # Destructive or history-rewriting (confirm every time)

    @property
    def rank(self) -> int:
        """Numeric severity, higher is riskier."""
        return _TIER_RANK[self]

    @property
    def is_mutating(self) -> bool:
        """Check if commands of this tier change repository or filesystem state."""
        return self is not RiskTier.SAFE

    def __str__(self) -> str:
        return self.value


_TIER_RANK = {RiskTier.SAFE: 0, RiskTier.CAUTION: 1, RiskTier.DANGEROUS: 2}


class ClassificationRule(BaseModel):
    """A single classification rule.

    ``pattern`` is a regular expression searched in the normalized segment
    text (words joined by single spaces, Git global options removed).
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Short identifier for logging")
    pattern: str = Field(..., description="Regular expression over the normalized segment")
    tier: RiskTier = Field(..., description="Tier assigned when the pattern matches")
    reason: str = Field(default="", description="Human readable explanation")

    def matches(self, segment: str) -> bool:
        return re.search(self.pattern, segment) is not None


def _rule(name: str, pattern: str, tier: RiskTier, reason: str) -> ClassificationRule:
    return ClassificationRule(name=name, pattern=pattern, tier=tier, reason=reason)


_D = RiskTier.DANGEROUS
_C = RiskTier.CAUTION
_S = RiskTier.SAFE

# Verbs end at whitespace or the end of the segment: "ls.py" is not "ls".
_END = r"(?=\s|$)"

# Rules are evaluated in order; the first match wins for a segment.
DEFAULT_RULES: tuple[ClassificationRule, ...] = (
    # Destructive git operations
    _rule("force-push", rf"^git push{_END}.*(\s--force{_END}|\s--force-with-lease(=\S*)?{_END}|\s-[a-zA-Z]*f[a-zA-Z]*{_END}|\s\+\S+)", _D, "Force push overwrites remote history"),
    _rule("mirror-push", rf"^git push{_END}.*\s--mirror{_END}", _D, "Mirror push can delete remote refs"),
    _rule("remote-delete", rf"^git push{_END}.*(\s--delete{_END}|\s-d{_END}|\s:\S+)", _D, "Deletes a remote branch or tag"),
    _rule("hard-reset", rf"^git reset{_END}.*\s--(hard|merge|keep){_END}", _D, "Discards working tree changes"),
    _rule("clean", rf"^git clean{_END}.*(\s-[a-zA-Z]*f|\s--force{_END})", _D, "Deletes untracked files"),
    _rule("branch-delete", rf"^git branch{_END}.*(\s-[a-zA-Z]*[dD]{_END}|\s--delete{_END})", _D, "Deletes a branch"),
    _rule("tag-delete", rf"^git tag{_END}.*(\s-d{_END}|\s--delete{_END})", _D, "Deletes a tag"),
    _rule("rebase", rf"^git rebase{_END}", _D, "Rewrites commit history"),
    _rule("filter-branch", rf"^git (filter-branch|filter-repo){_END}", _D, "Rewrites the entire history"),
    _rule("update-ref-delete", rf"^git update-ref{_END}.*\s-d{_END}", _D, "Deletes a ref directly"),
    _rule("reflog-expire", rf"^git reflog (expire|delete){_END}", _D, "Drops recovery points"),
    _rule("gc-prune", rf"^git gc{_END}.*\s--prune(=\S*)?{_END}", _D, "Prunes unreachable objects"),
    _rule("stash-drop", rf"^git stash (drop|clear){_END}", _D, "Drops stashed changes"),
    _rule("checkout-discard", rf"^git checkout{_END}.*(\s--(\s|$)|\s\.$|\s-f{_END}|\s--force{_END})", _D, "Discards working tree changes"),
    # Only "--staged" alone leaves the work tree untouched.
    _rule("restore-worktree", rf"^git restore{_END}(?!.*\s(--staged|-S){_END})", _D, "Discards working tree changes"),
    _rule("restore-staged-worktree", rf"^git restore{_END}.*\s(--worktree|-W|-[a-zA-Z]*W[a-zA-Z]*){_END}", _D, "Discards working tree changes"),
    _rule("switch-discard", rf"^git switch{_END}.*\s(--discard-changes|--force|-[a-zA-Z]*f[a-zA-Z]*){_END}", _D, "Discards working tree changes"),
    _rule("remote-remove", rf"^git remote (remove|rm){_END}", _D, "Removes a remote"),
    # Destructive shell patterns
    _rule("rm-recursive", rf"^rm{_END}.*\s(-[a-zA-Z]*[rR][a-zA-Z]*|--recursive){_END}", _D, "Recursive deletion"),
    _rule("windows-del", r"^del /", _D, "Bulk deletion"),
    _rule("format", r"^(format|mkfs(\.\w+)?)\b", _D, "Formats a filesystem"),
    _rule("chmod-777", r"^chmod\b.*\b777\b", _D, "World-writable permissions"),
    _rule("dd", r"^dd\b.*\bif=", _D, "Raw device copy"),
    _rule("fork-bomb", r":\(\)\s*\{", _D, "Fork bomb"),
    # Read-only git queries
    _rule("git-read", rf"^git (status|log|diff|show|blame|rev-parse|ls-files|ls-tree|describe|shortlog|grep|cat-file|whatchanged|rev-list|name-rev|help|version){_END}", _S, "Read-only Git query"),
    _rule("git-branch-list", r"^git branch( (-a|-r|-v|-vv|--list|--all|--remotes|--show-current|--contains \S+|--merged|--no-merged))*$", _S, "Lists branches"),
    _rule("git-tag-list", r"^git tag( (-l|--list|-n\d*)( \S+)?)?$", _S, "Lists tags"),
    _rule("git-remote-list", r"^git remote( (-v|--verbose|show \S+|get-url \S+))?$", _S, "Lists remotes"),
    _rule("git-stash-list", rf"^git stash (list|show){_END}", _S, "Inspects stashes"),
    _rule("git-config-read", rf"^git config( --\w+)* (--get|--get-all|--get-regexp|--list|-l){_END}", _S, "Reads configuration"),
    _rule("git-reflog-show", r"^git reflog( show)?( \S+)*$", _S, "Shows the reflog"),
    # Ordinary git mutations
    _rule("git-commit-amend", rf"^git commit{_END}.*\s--amend{_END}", _C, "Rewrites the last local commit"),
    _rule("git-write", rf"^git (add|commit|stash|fetch|pull|merge|cherry-pick|revert|checkout|switch|mv|rm|init|branch|tag|push|restore|notes|am|apply|remote add){_END}", _C, "Modifies repository state"),
    # Read-only shell commands
    _rule("shell-read", rf"^(ls|pwd|cat|head|tail|wc|echo|which|whoami|printenv|file|stat|tree){_END}", _S, "Read-only shell command"),
    # Ordinary shell mutations
    _rule("shell-write", rf"^(rm|mv|cp|chmod|chown|mkdir|touch|ln){_END}", _C, "Modifies files"),
)

# Git options that precede the subcommand.
_GIT_OPTS_WITH_VALUE = {"-C", "-c", "--git-dir", "--work-tree", "--namespace", "--exec-path"}
_GIT_FLAG_OPTS = {"--no-pager", "-p", "--paginate", "--bare", "--no-replace-objects", "--literal-pathspecs"}

_OPERATOR_CHARS = ";&|<>\n"
_SUDO_RULE = _rule("sudo", r"^(sudo|doas)\b", _D, "Runs with elevated privileges")
_HARMLESS_DEVICES = {"/dev/null", "/dev/stdout", "/dev/stderr", "/dev/tty"}


class Segment(NamedTuple):
    """One simple command of a compound command line."""

    words: list[str]
    redirects: list[str]

    @property
    def redirected(self) -> bool:
        return bool(self.redirects)


def has_command_substitution(command: str) -> bool:
    """Check for ``$(...)`` or backticks outside single quotes."""
    in_single = False
    in_double = False
    escaped = False
    for i, char in enumerate(command):
        if escaped:
            escaped = False
        elif char == "\\" and not in_single:
            escaped = True
        elif char == "'" and not in_double:
            in_single = not in_single
        elif char == '"' and not in_single:
            in_double = not in_double
        elif not in_single and (char == "`" or command.startswith("$(", i)):
            return True
    return False


class CommandClassifier:
    """Classifier for assessing risk tiers of proposed commands.

    The rule table is ordered and extensible: pass ``extra_rules`` (checked
    before the defaults) or call ``register`` to add a rule at runtime.
    """

    def __init__(
        self,
        rules: list[ClassificationRule] | tuple[ClassificationRule, ...] | None = None,
        extra_rules: list[ClassificationRule] | None = None,
    ):
        """Initialize the classifier.

        Args:
            rules: Replacement rule table (defaults to DEFAULT_RULES)
            extra_rules: Rules consulted before the table
        """
        base = DEFAULT_RULES if rules is None else rules
        self._rules: list[ClassificationRule] = [*(extra_rules or []), *base]

        self._risk_factor_templates = {
            RiskTier.SAFE: [
                "Read-only operation with no side effects",
            ],
            RiskTier.CAUTION: [
                "Modifies repository or file state",
                "Can be undone or reversed",
            ],
            RiskTier.DANGEROUS: [
                "Potentially irreversible operation",
                "May destroy history or uncommitted work",
                "Requires confirmation every time",
            ],
        }

    @property
    def rules(self) -> list[ClassificationRule]:
        return list(self._rules)

    def register(self, rule: ClassificationRule, first: bool = True) -> None:
        """Add a rule to the table.

        Args:
            rule: Rule to add
            first: Insert before existing rules (default) instead of after
        """
        if first:
            self._rules.insert(0, rule)
        else:
            self._rules.append(rule)

    def classify(self, command: str) -> RiskTier:
        """Classify a command string.

        Compound commands are split on shell operators and the most severe
        segment wins. Commands that cannot be parsed classify as DANGEROUS.

        Args:
            command: Command text as it would be typed in a shell

        Returns:
            RiskTier: Assessed tier
        """
        tier = max((tier for tier, _ in self.explain(command)), key=lambda t: t.rank)
        logger.debug(f"Classified command {command!r} as {tier.value}")
        return tier

    def explain(self, command: str) -> list[tuple[RiskTier, str]]:
        """Classify each segment of a command and give the reason.

        Args:
            command: Command text

        Returns:
            list[tuple[RiskTier, str]]: One (tier, reason) pair per segment
        """
        try:
            segments = self.split(command)
        except ClassificationError as e:
            logger.info(f"{e}; treating as dangerous")
            return [(RiskTier.DANGEROUS, f"Unparseable command: {e}")]

        return [self._classify_segment(segment) for segment in segments]

    def risk_factors(self, command: str) -> list[str]:
        """Get human-readable risk factors for a command.

        Args:
            command: Command text

        Returns:
            list[str]: Risk factor descriptions
        """
        verdicts = self.explain(command)
        tier = max((t for t, _ in verdicts), key=lambda t: t.rank)
        factors = list(self._risk_factor_templates[tier])
        for _, reason in verdicts:
            if reason not in factors:
                factors.append(reason)
        return factors

    def split(self, command: str) -> list[Segment]:
        """Split a command into segments of words.

        Redirection operators and their targets are removed from the words
        and recorded on the segment instead.

        Returns:
            list[Segment]: Segments in command order

        Raises:
            ClassificationError: If the command is empty or cannot be tokenized
        """
        if not command or not command.strip():
            raise ClassificationError(command, "empty command")
        if has_command_substitution(command):
            raise ClassificationError(command, "command substitution")

        lexer = shlex.shlex(command, posix=True, punctuation_chars=_OPERATOR_CHARS)
        lexer.whitespace_split = True
        lexer.whitespace = " \t\r"
        lexer.commenters = ""
        try:
            tokens = list(lexer)
        except ValueError as e:
            raise ClassificationError(command, str(e)) from e

        segments: list[Segment] = []
        current = Segment([], [])
        pending: str | None = None  # "out" or "in" after a redirection operator
        for token in tokens:
            if token and set(token) <= set(_OPERATOR_CHARS):
                if ">" in token:
                    pending = "out"
                    continue
                if "<" in token:
                    pending = "in"
                    continue
                if current.words:
                    segments.append(current)
                current, pending = Segment([], []), None
            elif pending == "out":
                # ">&1" style targets duplicate a descriptor, not a file.
                if not token.isdigit():
                    current.redirects.append(token)
                pending = None
            elif pending == "in":
                pending = None
            else:
                current.words.append(token)
        if pending == "out":
            raise ClassificationError(command, "redirection without a target")
        if current.words:
            segments.append(current)

        if not segments:
            raise ClassificationError(command, "no command words")
        return segments

    def _classify_segment(self, segment: Segment) -> tuple[RiskTier, str]:
        for target in segment.redirects:
            if target.startswith("/dev/") and target not in _HARMLESS_DEVICES:
                return RiskTier.DANGEROUS, f"Writes directly to device {target}"

        rule = self._match(segment.words)
        if rule is None:
            return RiskTier.DANGEROUS, f"Unrecognised command: {segment.words[0]}"
        if segment.redirected and rule.tier is RiskTier.SAFE:
            return RiskTier.CAUTION, f"{rule.reason}; output redirected to a file"
        return rule.tier, rule.reason

    def _match(self, words: list[str]) -> ClassificationRule | None:
        if _SUDO_RULE.matches(words[0]):
            return _SUDO_RULE

        normalized = " ".join(self._strip_git_options(words))
        for rule in self._rules:
            if rule.matches(normalized):
                return rule
        return None

    @staticmethod
    def _strip_git_options(words: list[str]) -> list[str]:
        if words[0] != "git":
            return words

        i = 1
        while i < len(words) and words[i].startswith("-"):
            option = words[i].split("=", 1)[0]
            if option in _GIT_OPTS_WITH_VALUE and "=" not in words[i]:
                i += 2
            elif option in _GIT_OPTS_WITH_VALUE or option in _GIT_FLAG_OPTS:
                i += 1
            else:
                break
        return [words[0], *words[i:]]

    def get_risk_color(self, tier: RiskTier) -> str:
        """Get the Rich color for a risk tier."""
        return {
            RiskTier.SAFE: "green",
            RiskTier.CAUTION: "yellow",
            RiskTier.DANGEROUS: "red bold",
        }[tier]

    def get_risk_emoji(self, tier: RiskTier) -> str:
        """Get an emoji representing the risk tier."""
        return {
            RiskTier.SAFE: "✓",
            RiskTier.CAUTION: "⚠️",
            RiskTier.DANGEROUS: "🚨",
        }[tier]
