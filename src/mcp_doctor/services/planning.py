"""Repair planning for MCP Doctor.

Maps classified errors to candidate fixes.

Classes
-------
FixTemplate
    Abstract base for a predefined fix keyed by ``(error kind, message
    shape)``.
CommandNotFoundTemplate, ModuleNotFoundTemplate, PermissionTemplate,
ConfigSyntaxTemplate, MissingEnvVarTemplate
    The built-in templates.
RepairPlanner
    Builds a :class:`RepairPlan` from errors, optionally merging ranked
    suggestions from an injected :class:`BaseRepairAdvisor`.

Only fixable errors are planned.  A fixable error no template matches
contributes no fix; it is not an error.  Process failures deliberately have
no template.
"""

from __future__ import annotations

import dataclasses
import logging
import re
import shutil
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence

from mcp_doctor.domain.entities import HelperProcess, TargetClient
from mcp_doctor.domain.enums import ChangeKind, ErrorKind, FixSource
from mcp_doctor.domain.values import (
    AdvisorSuggestion,
    ClassifiedError,
    RepairChange,
    RepairFix,
    RepairPlan,
)
from mcp_doctor.services.advisor import BaseRepairAdvisor

logger = logging.getLogger(__name__)

# Replacement command plus arguments to prepend, tried in order.
COMMAND_ALTERNATIVES: dict[str, tuple[tuple[str, tuple[str, ...]], ...]] = {
    "node": (("nodejs", ()),),
    "nodejs": (("node", ()),),
    "npx": (("npm", ("exec", "--")),),
    "python": (("python3", ()), ("py", ())),
    "python3": (("python", ()), ("py", ())),
    "pip": (("pip3", ()),),
    "pip3": (("pip", ()),),
}

Alternative = tuple[str, tuple[str, ...]]
CommandFinder = Callable[[str], "Alternative | None"]


def find_alternative_command(
    command: str,
    which: Callable[[str], str | None] = shutil.which,
) -> Alternative | None:
    """First installed alternative for a missing *command*, or ``None``."""
    for alternative, prefix in COMMAND_ALTERNATIVES.get(command, ()):
        if which(alternative):
            return alternative, prefix
    return None


# ===================================================================== #
#  Fix templates                                                         #
# ===================================================================== #


class FixTemplate(ABC):
    """A predefined fix for one ``(kind, message shape)``."""

    name: str = ""
    kind: ErrorKind = ErrorKind.UNKNOWN
    shape: re.Pattern[str] = re.compile(r".*")

    def matches(self, error: ClassifiedError) -> bool:
        return error.kind is self.kind and self.shape.search(error.message) is not None

    @abstractmethod
    def build(
        self,
        error: ClassifiedError,
        helper: HelperProcess | None,
    ) -> RepairFix | None:
        """Build the fix for *error* against the current *helper* entry."""


class CommandNotFoundTemplate(FixTemplate):
    """Swap in an installed alternative, or ask for the command to be installed."""

    name = "command-not-found"
    kind = ErrorKind.PATH
    shape = re.compile(r'Command "(?P<command>[^"]+)" not found in PATH')

    def __init__(self, finder: CommandFinder = find_alternative_command) -> None:
        self._finder = finder

    def build(self, error: ClassifiedError, helper: HelperProcess | None) -> RepairFix | None:
        match = self.shape.search(error.message)
        if match is None:
            return None
        command = match.group("command")
        helper_name = helper.name if helper is not None else None

        alternative = None
        if helper is not None and helper.command == command:
            alternative = self._finder(command)
        if alternative is None:
            return RepairFix(
                error=error,
                description=f"Install {command} command",
                changes=(
                    RepairChange(
                        kind=ChangeKind.PACKAGE,
                        description=f"Install {command}",
                        helper_name=helper_name,
                        before=helper.command if helper is not None else None,
                    ),
                ),
                automatic=False,
                template=self.name,
            )

        replacement, prefix = alternative
        changes = [
            RepairChange(
                kind=ChangeKind.COMMAND,
                description=f"Replace {command} with {replacement}",
                helper_name=helper_name,
                before=helper.command,
                after=replacement,
            )
        ]
        if prefix:
            changes.append(
                RepairChange(
                    kind=ChangeKind.ARGUMENT,
                    description=f"Prefix arguments with {' '.join(prefix)}",
                    helper_name=helper_name,
                    before=list(helper.args),
                    after=[*prefix, *helper.args],
                )
            )
        return RepairFix(
            error=error,
            description=f"Fix {command} command by using {replacement}",
            changes=tuple(changes),
            automatic=True,
            template=self.name,
        )


class ModuleNotFoundTemplate(FixTemplate):
    name = "module-not-found"
    kind = ErrorKind.PATH
    shape = re.compile(r"Module not found")

    _MODULE = re.compile(r"Cannot find module ['\"]?([^'\"\s]+)", re.IGNORECASE)

    def build(self, error: ClassifiedError, helper: HelperProcess | None) -> RepairFix | None:
        match = self._MODULE.search(error.evidence)
        module = match.group(1) if match else None
        description = f"Install missing module {module}" if module else "Install missing module"
        return RepairFix(
            error=error,
            description=description,
            changes=(
                RepairChange(
                    kind=ChangeKind.PACKAGE,
                    description=description,
                    helper_name=helper.name if helper is not None else None,
                ),
            ),
            automatic=False,
            template=self.name,
        )


class PermissionTemplate(FixTemplate):
    name = "permission-denied"
    kind = ErrorKind.PERMISSION
    shape = re.compile(r"Permission denied")

    def build(self, error: ClassifiedError, helper: HelperProcess | None) -> RepairFix | None:
        return RepairFix(
            error=error,
            description="Fix file permissions",
            changes=(
                RepairChange(
                    kind=ChangeKind.PERMISSION,
                    description="Fix file permissions or run with elevated privileges",
                    helper_name=helper.name if helper is not None else None,
                    before=error.evidence or None,
                ),
            ),
            automatic=False,
            template=self.name,
        )


class ConfigSyntaxTemplate(FixTemplate):
    name = "config-syntax"
    kind = ErrorKind.CONFIG
    shape = re.compile(r"Invalid configuration syntax")

    def build(self, error: ClassifiedError, helper: HelperProcess | None) -> RepairFix | None:
        return RepairFix(
            error=error,
            description="Repair configuration file",
            changes=(
                RepairChange(
                    kind=ChangeKind.CONFIG,
                    description="Repair configuration file syntax",
                    helper_name=None,
                    before=error.message,
                    after="repaired",
                ),
            ),
            automatic=True,
            template=self.name,
        )


class MissingEnvVarTemplate(FixTemplate):
    """The value is unknown, so the change is manual."""

    name = "missing-env-var"
    kind = ErrorKind.ENVIRONMENT
    shape = re.compile(r'Environment variable "(?P<variable>[^"]+)" is not set')

    def build(self, error: ClassifiedError, helper: HelperProcess | None) -> RepairFix | None:
        match = self.shape.search(error.message)
        if match is None:
            return None
        variable = match.group("variable")
        return RepairFix(
            error=error,
            description=f"Set environment variable {variable}",
            changes=(
                RepairChange(
                    kind=ChangeKind.ENVIRONMENT,
                    description=f"Add {variable} to the server's env block",
                    helper_name=helper.name if helper is not None else None,
                    before=helper.env.get(variable) if helper is not None else None,
                ),
            ),
            automatic=False,
            template=self.name,
        )


def default_templates(finder: CommandFinder = find_alternative_command) -> list[FixTemplate]:
    return [
        CommandNotFoundTemplate(finder),
        ModuleNotFoundTemplate(),
        PermissionTemplate(),
        ConfigSyntaxTemplate(),
        MissingEnvVarTemplate(),
    ]


# ===================================================================== #
#  Planner                                                               #
# ===================================================================== #


class RepairPlanner:
    """Builds repair plans from classified errors.

    Parameters
    ----------
    templates:
        Ordered template table; the first match wins.
    advisor:
        Optional AI advisor consulted by :meth:`plan_with_advisor`.
    """

    def __init__(
        self,
        templates: Sequence[FixTemplate] | None = None,
        advisor: BaseRepairAdvisor | None = None,
    ) -> None:
        self._templates = list(templates) if templates is not None else default_templates()
        self._advisor = advisor

    @property
    def advisor(self) -> BaseRepairAdvisor | None:
        return self._advisor

    def template_for(self, error: ClassifiedError) -> FixTemplate | None:
        for template in self._templates:
            if template.matches(error):
                return template
        return None

    def plan(self, client: TargetClient, errors: Sequence[ClassifiedError]) -> RepairPlan:
        """Template-only plan for *client*."""
        fixes: list[RepairFix] = []
        seen: set[tuple[str, str | None]] = set()

        for error in errors:
            if not error.fixable:
                continue
            template = self.template_for(error)
            if template is None:
                logger.debug("No fix template for %s: %s", error.kind.value, error.message)
                continue
            for attributed in self._attribute(error, client):
                helper = client.helper(attributed.helper_name) if attributed.helper_name else None
                key = (template.name, attributed.helper_name)
                if template.name == ConfigSyntaxTemplate.name:
                    key = (template.name, None)
                if key in seen:
                    continue
                fix = template.build(attributed, helper)
                if fix is None:
                    continue
                seen.add(key)
                fixes.append(fix)

        # Whole-file repairs go first so field edits land on a loadable file.
        fixes.sort(key=lambda f: 0 if f.template == ConfigSyntaxTemplate.name else 1)
        plan = RepairPlan(client=client, errors=tuple(errors), fixes=tuple(fixes))
        logger.info(
            "Planned %d fixes for %s (%d errors)",
            len(plan.fixes), client.display_name, len(errors),
        )
        return plan

    def plan_with_advisor(
        self,
        client: TargetClient,
        errors: Sequence[ClassifiedError],
        log_text: str,
        suggestions: Sequence[AdvisorSuggestion] | None = None,
    ) -> RepairPlan:
        """Template plan plus ranked advisor fixes appended after it.

        ``suggestions`` may be supplied directly; otherwise the injected
        advisor is asked.  Any advisor failure degrades to the template plan.
        """
        plan = self.plan(client, errors)
        if suggestions is None:
            if self._advisor is None:
                return plan
            try:
                suggestions = self._advisor.suggest(log_text, errors)
            except Exception as exc:
                logger.warning("Advisor failed, using template plan only: %s", exc)
                return plan

        ranked = sorted(suggestions, key=lambda s: s.confidence, reverse=True)
        advisor_fixes = tuple(self._advisor_fix(s, errors, client) for s in ranked)
        return dataclasses.replace(plan, fixes=plan.fixes + advisor_fixes)

    # -- internals ----------------------------------------------------------

    @staticmethod
    def _attribute(error: ClassifiedError, client: TargetClient) -> list[ClassifiedError]:
        """Bind a helper-less error to each helper its evidence names."""
        if error.helper is not None:
            return [error]
        named = [h for h in client.helpers if h.name and h.name in error.evidence]
        if not named:
            return [error]
        return [dataclasses.replace(error, helper=h) for h in named]

    @staticmethod
    def _advisor_fix(
        suggestion: AdvisorSuggestion,
        errors: Sequence[ClassifiedError],
        client: TargetClient,
    ) -> RepairFix:
        target = next((e for e in errors if e.kind is suggestion.error_kind), None)
        if target is None:
            target = ClassifiedError(
                kind=suggestion.error_kind,
                message=suggestion.description,
                client=client,
                fixable=True,
            )
        return RepairFix(
            error=target,
            description=suggestion.description,
            changes=(),
            automatic=False,
            source=FixSource.ADVISOR,
            confidence=suggestion.confidence,
            steps=suggestion.steps,
            template="advisor",
        )
