"""Log-pattern error classification for MCP Doctor.

Turns helper-process log text into typed :class:`ClassifiedError` records.

Classes
-------
ClassificationRule
    One ``(pattern, kind, message template, fixable)`` row of the rule table.
LogClassifier
    Ordered rule table plus the per-client log discovery conventions.

Every non-blank line is tested against the rules in table order and the
first match wins, so a line yields at most one record.  Unmatched lines
produce nothing.  File-system problems (missing log directory, unreadable
file) are reported as warnings and never raised.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from mcp_doctor.domain.entities import HelperProcess, TargetClient
from mcp_doctor.domain.enums import ClientKind, ErrorKind, Platform
from mcp_doctor.domain.values import ClassifiedError, LogAnalysisResult

logger = logging.getLogger(__name__)

# Errors of these kinds mark a helper as not ok in the aggregate analysis.
FATAL_KINDS = frozenset({ErrorKind.PROCESS, ErrorKind.PATH})

_HELPER_LOG_NAME = re.compile(r"^mcp-(?:server-)?(.+?)\.log$")


# ===================================================================== #
#  Rules                                                                 #
# ===================================================================== #


@dataclass(frozen=True)
class ClassificationRule:
    """A single classifier rule.

    ``message`` may reference capture groups positionally (``{0}``); a rule
    whose pattern captures nothing uses the message verbatim.
    """

    pattern: re.Pattern[str]
    kind: ErrorKind
    message: str
    fixable: bool = False
    name: str = ""

    @classmethod
    def compile(
        cls,
        pattern: str,
        kind: ErrorKind,
        message: str,
        fixable: bool = False,
        name: str = "",
    ) -> ClassificationRule:
        """Build a rule from a case-insensitive regex source string."""
        return cls(re.compile(pattern, re.IGNORECASE), kind, message, fixable, name or kind.value)

    def match(self, line: str) -> str | None:
        """Return the rendered message if *line* matches, else ``None``."""
        m = self.pattern.search(line)
        if m is None:
            return None
        groups = [g for g in m.groups() if g is not None]
        if groups and "{0}" in self.message:
            return self.message.format(*groups)
        return self.message


DEFAULT_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule.compile(
        r"spawn\s+(\S+)\s+ENOENT", ErrorKind.PATH,
        'Command "{0}" not found in PATH', fixable=True, name="command-not-found",
    ),
    ClassificationRule.compile(
        r"connect ECONNREFUSED", ErrorKind.NETWORK,
        "Connection refused", fixable=False, name="connection-refused",
    ),
    ClassificationRule.compile(
        r"ETIMEDOUT|timed out", ErrorKind.NETWORK,
        "Connection timed out", fixable=False, name="timeout",
    ),
    ClassificationRule.compile(
        r"EACCES: permission denied", ErrorKind.PERMISSION,
        "Permission denied", fixable=True, name="permission-denied",
    ),
    ClassificationRule.compile(
        r"Cannot find module ['\"]?([^'\"\s]+)", ErrorKind.PATH,
        "Module not found", fixable=True, name="module-not-found",
    ),
    ClassificationRule.compile(
        r"SyntaxError: Unexpected token|Unexpected end of JSON input", ErrorKind.CONFIG,
        "Invalid configuration syntax", fixable=True, name="config-syntax",
    ),
    ClassificationRule.compile(
        r"environment variable ([A-Z_][A-Z0-9_]*) (?:is )?not set", ErrorKind.ENVIRONMENT,
        'Environment variable "{0}" is not set', fixable=True, name="missing-env-var",
    ),
    ClassificationRule.compile(
        r"Failed to start server", ErrorKind.PROCESS,
        "Failed to start server", fixable=True, name="start-failed",
    ),
    ClassificationRule.compile(
        r"exited with code [1-9]|Server transport closed unexpectedly", ErrorKind.PROCESS,
        "Server process exited unexpectedly", fixable=False, name="process-exited",
    ),
)

# Home-relative log globs per (client kind, platform).
_LOG_GLOBS: dict[tuple[ClientKind, Platform], str] = {
    (ClientKind.CLAUDE_DESKTOP, Platform.WINDOWS): "AppData/Roaming/Claude/logs/mcp-server-*.log",
    (ClientKind.CLAUDE_DESKTOP, Platform.MACOS): "Library/Logs/Claude/mcp-server-*.log",
    (ClientKind.WINDSURF, Platform.WINDOWS): ".codeium/windsurf/logs/mcp-*.log",
    (ClientKind.WINDSURF, Platform.MACOS): ".codeium/windsurf/logs/mcp-*.log",
    (ClientKind.WINDSURF, Platform.LINUX): ".codeium/windsurf/logs/mcp-*.log",
    (ClientKind.CURSOR, Platform.WINDOWS): "AppData/Roaming/Cursor/logs/mcp-*.log",
    (ClientKind.CURSOR, Platform.MACOS): "Library/Application Support/Cursor/logs/mcp-*.log",
    (ClientKind.CURSOR, Platform.LINUX): ".config/Cursor/logs/mcp-*.log",
}

_INSTALL_HINTS: dict[str, str] = {
    "node": "Install Node.js from https://nodejs.org/",
    "nodejs": "Install Node.js from https://nodejs.org/",
    "npm": "Install npm by installing Node.js from https://nodejs.org/",
    "npx": 'Install npx by running "npm install -g npx"',
    "python": "Install Python from https://www.python.org/",
    "python3": "Install Python from https://www.python.org/",
    "pip": "Install pip by installing Python from https://www.python.org/",
    "pip3": "Install pip by installing Python from https://www.python.org/",
}

_QUOTED = re.compile(r'"([^"]+)"')


def quoted_token(message: str) -> str | None:
    """First double-quoted token of a rendered message (command, variable)."""
    m = _QUOTED.search(message)
    return m.group(1) if m else None


def read_log_tail(path: str | Path, offset: int = 0) -> str:
    """Text of *path* from byte *offset*; restarts at 0 if the file shrank."""
    with Path(path).open("rb") as fh:
        fh.seek(0, 2)
        size = fh.tell()
        fh.seek(offset if 0 <= offset <= size else 0)
        return fh.read().decode("utf-8", errors="replace")


def helper_name_from_log(path: str | Path) -> str | None:
    """``mcp-server-<name>.log`` / ``mcp-<name>.log`` -> ``<name>``."""
    m = _HELPER_LOG_NAME.match(Path(path).name)
    return m.group(1) if m else None


# ===================================================================== #
#  Classifier                                                            #
# ===================================================================== #


class LogClassifier:
    """Classifies helper log lines with an ordered, extensible rule table.

    Parameters
    ----------
    rules:
        Initial rule table; defaults to :data:`DEFAULT_RULES`.
    platform:
        Platform whose log conventions apply.
    home:
        User home the log globs are relative to.
    """

    def __init__(
        self,
        rules: Sequence[ClassificationRule] | None = None,
        platform: Platform = Platform.LINUX,
        home: Path | None = None,
    ) -> None:
        self._rules: list[ClassificationRule] = list(DEFAULT_RULES if rules is None else rules)
        self._platform = platform
        self._home = home or Path.home()

    @property
    def rules(self) -> tuple[ClassificationRule, ...]:
        return tuple(self._rules)

    def register_rule(self, rule: ClassificationRule, index: int | None = None) -> None:
        """Add *rule*; ``index=0`` lets it pre-empt every existing rule."""
        if index is None:
            self._rules.append(rule)
        else:
            self._rules.insert(index, rule)

    # -- line analysis ------------------------------------------------------

    def classify_line(
        self,
        line: str,
        helper: HelperProcess | None = None,
        client: TargetClient | None = None,
    ) -> ClassifiedError | None:
        if not line.strip():
            return None
        for rule in self._rules:
            message = rule.match(line)
            if message is not None:
                return ClassifiedError(
                    kind=rule.kind,
                    message=message,
                    evidence=line.strip(),
                    helper=helper,
                    client=client,
                    fixable=rule.fixable,
                )
        return None

    def analyze(
        self,
        lines: Iterable[str] | str,
        helper: HelperProcess | None = None,
        client: TargetClient | None = None,
    ) -> list[ClassifiedError]:
        """Classify *lines* (an iterable or one block of text)."""
        if isinstance(lines, str):
            lines = lines.splitlines()
        errors: list[ClassifiedError] = []
        for line in lines:
            error = self.classify_line(line, helper, client)
            if error is not None:
                errors.append(error)
        return errors

    def analyze_file(
        self,
        path: str | Path,
        helper: HelperProcess | None = None,
        client: TargetClient | None = None,
        offset: int = 0,
    ) -> list[ClassifiedError]:
        """Classify a log file from byte *offset* on.

        An unreadable file yields no errors.  An offset past the end of the
        file (the log was truncated or rotated) restarts from the top.
        """
        logger.debug("Analyzing log file %s from offset %d", path, offset)
        try:
            text = read_log_tail(path, offset)
        except OSError as exc:
            logger.warning("Failed to read log file %s: %s", path, exc)
            return []
        return self.analyze(text, helper, client)

    # -- log discovery ------------------------------------------------------

    def log_globs(self, client: TargetClient) -> list[Path]:
        """Glob patterns under which *client* writes helper logs."""
        relative = _LOG_GLOBS.get((client.kind, self._platform))
        return [self._home / relative] if relative else []

    def log_paths(self, client: TargetClient) -> list[Path]:
        """Existing log files for *client*, sorted by name."""
        return [f for files in self._expand_all(client).values() for f in files]

    def log_sizes(self, client: TargetClient) -> dict[str, int]:
        """Current byte size of each log file (a watermark for later reads)."""
        sizes: dict[str, int] = {}
        for path in self.log_paths(client):
            try:
                sizes[str(path)] = path.stat().st_size
            except OSError:
                continue
        return sizes

    def _expand_all(self, client: TargetClient) -> dict[Path, list[Path]]:
        expanded: dict[Path, list[Path]] = {}
        for pattern in self.log_globs(client):
            directory = pattern.parent
            try:
                files = sorted(directory.glob(pattern.name)) if directory.is_dir() else []
            except OSError as exc:
                logger.warning("Failed to list %s: %s", directory, exc)
                files = []
            expanded[pattern] = files
        return expanded

    def analyze_client(
        self,
        client: TargetClient,
        offsets: Mapping[str, int] | None = None,
    ) -> LogAnalysisResult:
        """Aggregate analysis of every helper log belonging to *client*.

        ``offsets`` maps log paths to a byte watermark; only text written
        after it is classified.
        """
        offsets = offsets or {}
        logger.info("Analyzing logs for %s", client.display_name)
        errors: list[ClassifiedError] = []
        warnings: list[str] = []
        helper_ok: dict[str, bool] = {}
        log_files: list[str] = []

        expanded = self._expand_all(client)
        if not expanded:
            warnings.append(f"No known log location for {client.display_name}")
        for pattern, files in expanded.items():
            if not files:
                warnings.append(f"No log files found matching pattern: {pattern}")
                continue
            for log_file in files:
                name = helper_name_from_log(log_file)
                helper = client.helper(name) if name else None
                file_errors = self.analyze_file(
                    log_file, helper, client, offset=offsets.get(str(log_file), 0)
                )
                errors.extend(file_errors)
                log_files.append(str(log_file))
                if name:
                    ok = not any(e.kind in FATAL_KINDS for e in file_errors)
                    helper_ok[name] = helper_ok.get(name, True) and ok

        logger.info(
            "Found %d errors and %d warnings for %s",
            len(errors), len(warnings), client.display_name,
        )
        return LogAnalysisResult(
            errors=tuple(errors),
            warnings=tuple(warnings),
            helper_ok=helper_ok,
            log_files=tuple(log_files),
        )

    def read_client_logs(self, client: TargetClient, max_chars: int | None = None) -> str:
        """Concatenated log text for *client* (tail-truncated to *max_chars*)."""
        chunks: list[str] = []
        for path in self.log_paths(client):
            try:
                chunks.append(f"==> {path.name} <==\n" + path.read_text(encoding="utf-8", errors="replace"))
            except OSError as exc:
                logger.warning("Failed to read log file %s: %s", path, exc)
        text = "\n".join(chunks)
        if max_chars is not None and len(text) > max_chars:
            text = text[-max_chars:]
        return text

    # -- file helpers -------------------------------------------------------

    def check_for_error_kind(self, path: str | Path, kind: ErrorKind) -> bool:
        """``True`` if any line of *path* matches a rule of *kind*."""
        rules = [r for r in self._rules if r.kind is kind]
        try:
            text = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("Failed to check log file %s: %s", path, exc)
            return False
        return any(r.pattern.search(line) for line in text.splitlines() for r in rules)

    def clear_log_file(self, path: str | Path) -> bool:
        """Truncate *path*; returns ``False`` when it cannot be written."""
        try:
            Path(path).write_text("", encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to clear log file %s: %s", path, exc)
            return False
        return True


# ===================================================================== #
#  Remediation hints                                                     #
# ===================================================================== #


def suggest_fixes(errors: Iterable[ClassifiedError]) -> dict[str, str]:
    """Human-readable remediation hint per fixable ``kind-message`` pair."""
    suggestions: dict[str, str] = {}
    for error in errors:
        if not error.fixable:
            continue
        key = f"{error.kind.value}-{error.message}"
        if error.kind is ErrorKind.PATH:
            if "not found in PATH" in error.message:
                command = quoted_token(error.message)
                if command:
                    suggestions[key] = _INSTALL_HINTS.get(
                        command, f"Install {command} or update your PATH environment variable"
                    )
            elif "Module not found" in error.message:
                suggestions[key] = "Install the missing module using npm or yarn"
        elif error.kind is ErrorKind.PERMISSION:
            suggestions[key] = "Fix file permissions or run with elevated privileges"
        elif error.kind is ErrorKind.CONFIG:
            suggestions[key] = "Check and fix the configuration file syntax"
        elif error.kind is ErrorKind.ENVIRONMENT:
            variable = quoted_token(error.message)
            suggestions[key] = f"Set {variable or 'the missing variable'} in the server's env block"
        elif error.kind is ErrorKind.PROCESS:
            suggestions[key] = "Check the server process and its dependencies"
    return suggestions
