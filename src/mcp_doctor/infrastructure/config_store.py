"""Read, validate and edit client configuration files.

The store only owns the helper map (``mcpServers``: name ->
``{command, args, env}``); every other key of the host application's
configuration is preserved verbatim on write.
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from mcp_doctor.domain.entities import HelperProcess
from mcp_doctor.domain.enums import ChangeKind
from mcp_doctor.domain.exceptions import ConfigFileError, ConfigFileNotFoundError
from mcp_doctor.domain.values import RepairChange
from mcp_doctor.infrastructure.files import atomic_write_text, copy_exact

logger = logging.getLogger(__name__)

HELPER_MAP_KEY = "mcpServers"

_HELPER_FIELDS = ("command", "args", "env")

# Trailing commas and // line comments are the usual hand-edit damage.
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_LINE_COMMENT = re.compile(r'^\s*//.*$', re.MULTILINE)


def validate_config(config: Any) -> list[str]:
    """Return a list of problems with *config* (empty when valid)."""
    if not isinstance(config, dict):
        return ["Top-level configuration must be an object"]
    helpers = config.get(HELPER_MAP_KEY)
    if helpers is None:
        return [f"Missing {HELPER_MAP_KEY} section"]
    if not isinstance(helpers, dict):
        return [f"{HELPER_MAP_KEY} must be an object"]

    problems: list[str] = []
    for name, entry in helpers.items():
        if not name or not str(name).strip():
            problems.append("Server name cannot be empty")
        if not isinstance(entry, dict):
            problems.append(f"Server {name}: entry must be an object")
            continue
        if not entry.get("command"):
            problems.append(f"Server {name}: Missing command")
        if "args" in entry and not isinstance(entry["args"], list):
            problems.append(f"Server {name}: args must be an array")
        if "env" in entry and not isinstance(entry["env"], dict):
            problems.append(f"Server {name}: env must be an object")
    return problems


def parse_helpers(config: Mapping[str, Any]) -> list[HelperProcess]:
    """Extract helper processes from a parsed config (lenient)."""
    helpers = config.get(HELPER_MAP_KEY) if isinstance(config, Mapping) else None
    if not isinstance(helpers, dict):
        return []
    return [
        HelperProcess.from_config_entry(str(name), entry)
        for name, entry in helpers.items()
        if isinstance(entry, dict)
    ]


class ConfigStore:
    """File-level operations on client configuration files."""

    # -- reading ---------------------------------------------------------

    def read(self, config_path: str | Path) -> dict[str, Any]:
        """Parse the config at *config_path*.

        Raises
        ------
        ConfigFileNotFoundError
            If the file does not exist.
        ConfigFileError
            If it cannot be read or is not a JSON object.
        """
        path = Path(config_path)
        if not path.exists():
            raise ConfigFileNotFoundError(
                f"Client configuration file not found: {path}", config_path=str(path)
            )
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ConfigFileError(
                f"Failed to read configuration file: {path}: {exc}",
                config_path=str(path),
            ) from exc
        if not isinstance(data, dict):
            raise ConfigFileError(
                f"Configuration is not a JSON object: {path}", config_path=str(path)
            )
        return data

    def read_helpers(self, config_path: str | Path) -> list[HelperProcess]:
        return parse_helpers(self.read(config_path))

    # -- writing ---------------------------------------------------------

    def write(self, config_path: str | Path, config: Mapping[str, Any]) -> None:
        logger.debug("Writing config to %s", config_path)
        try:
            atomic_write_text(config_path, json.dumps(config, indent=2) + "\n")
        except OSError as exc:
            raise ConfigFileError(
                f"Failed to write configuration file: {config_path}: {exc}",
                config_path=str(config_path),
            ) from exc

    def _write_validated(self, config_path: str | Path, config: dict[str, Any]) -> None:
        problems = validate_config(config)
        if problems:
            raise ConfigFileError(
                f"Invalid configuration: {', '.join(problems)}",
                config_path=str(config_path),
                problems=problems,
            )
        self.write(config_path, config)

    # -- helper edits ----------------------------------------------------

    def update_helper(
        self,
        config_path: str | Path,
        helper_name: str,
        field: str,
        value: Any,
    ) -> Any:
        """Set ``field`` of *helper_name* to *value*; return the previous value.

        Creates the helper entry when it does not exist yet.  The resulting
        config must validate or nothing is written.
        """
        if field not in _HELPER_FIELDS:
            raise ValueError(f"field must be one of {_HELPER_FIELDS}, got '{field}'")
        config = self.read(config_path)
        helpers = config.setdefault(HELPER_MAP_KEY, {})
        entry = helpers.setdefault(helper_name, {"command": "", "args": [], "env": {}})
        before = entry.get(field)
        entry[field] = value
        self._write_validated(config_path, config)
        logger.info("Updated %s.%s in %s", helper_name, field, config_path)
        return before

    def set_env_var(
        self,
        config_path: str | Path,
        helper_name: str,
        variable: str,
        value: str,
    ) -> str | None:
        """Set one environment variable of a helper; return its previous value."""
        config = self.read(config_path)
        entry = config.get(HELPER_MAP_KEY, {}).get(helper_name)
        if not isinstance(entry, dict):
            raise ConfigFileError(
                f"Server {helper_name} not found in {config_path}", config_path=str(config_path)
            )
        env = entry.setdefault("env", {})
        before = env.get(variable)
        env[variable] = value
        self._write_validated(config_path, config)
        return before

    def add_helper(self, config_path: str | Path, helper: HelperProcess) -> None:
        config = self.read(config_path)
        helpers = config.setdefault(HELPER_MAP_KEY, {})
        if helper.name in helpers:
            raise ConfigFileError(
                f"Server {helper.name} already exists in {config_path}",
                config_path=str(config_path),
            )
        helpers[helper.name] = helper.to_config_entry()
        self._write_validated(config_path, config)

    def remove_helper(self, config_path: str | Path, helper_name: str) -> HelperProcess:
        """Remove and return the helper called *helper_name*."""
        config = self.read(config_path)
        helpers = config.get(HELPER_MAP_KEY)
        if not isinstance(helpers, dict) or helper_name not in helpers:
            raise ConfigFileError(
                f"Server {helper_name} not found in {config_path}", config_path=str(config_path)
            )
        entry = helpers.pop(helper_name)
        self.write(config_path, config)
        return HelperProcess.from_config_entry(helper_name, entry if isinstance(entry, dict) else {})

    def apply_change(self, config_path: str | Path, change: RepairChange) -> RepairChange:
        """Write one planned change and return it with the observed ``before``.

        Raises
        ------
        ConfigFileError
            For manual changes or changes without a helper target.
        """
        if change.kind is ChangeKind.CONFIG:
            repaired = self.repair(config_path)
            return RepairChange(
                kind=change.kind,
                description=change.description,
                helper_name=change.helper_name,
                before=change.before,
                after="repaired" if repaired else "unchanged",
            )
        if change.is_manual:
            raise ConfigFileError(
                f"Change requires manual action: {change.description}",
                config_path=str(config_path),
            )
        if not change.helper_name:
            raise ConfigFileError(
                f"Change has no target helper: {change.description}",
                config_path=str(config_path),
            )

        if change.kind is ChangeKind.COMMAND:
            before = self.update_helper(config_path, change.helper_name, "command", change.after)
        elif change.kind is ChangeKind.ARGUMENT:
            before = self.update_helper(
                config_path, change.helper_name, "args", list(change.after)
            )
        elif change.kind is ChangeKind.ENVIRONMENT:
            before = self.update_helper(
                config_path, change.helper_name, "env", dict(change.after)
            )
        elif change.kind is ChangeKind.PATH:
            before = self.set_env_var(config_path, change.helper_name, "PATH", str(change.after))
        else:
            raise ConfigFileError(
                f"Unsupported change kind: {change.kind.value}", config_path=str(config_path)
            )
        return RepairChange(
            kind=change.kind,
            description=change.description,
            helper_name=change.helper_name,
            before=before,
            after=change.after,
        )

    # -- repair ----------------------------------------------------------

    def create_template(self, config_path: str | Path) -> None:
        logger.info("Creating template config at %s", config_path)
        self.write(config_path, {HELPER_MAP_KEY: {}})

    def repair(self, config_path: str | Path) -> bool:
        """Bring a broken config back to a loadable shape.

        * missing file: write an empty template;
        * unparsable JSON: salvage trailing commas / ``//`` comments, else
          keep a side copy and write a template;
        * missing or mistyped helper map: add an empty one.

        Returns ``True`` when the file was changed, ``False`` if it was
        already valid.
        """
        path = Path(config_path)
        if not path.exists():
            self.create_template(path)
            return True

        text = path.read_text(encoding="utf-8", errors="replace")
        try:
            config = json.loads(text)
        except json.JSONDecodeError:
            salvaged = self._salvage(text)
            if salvaged is not None:
                logger.info("Salvaged malformed JSON in %s", path)
                config = salvaged
            else:
                side_copy = path.with_name(f"{path.name}.backup-{int(time.time() * 1000)}")
                copy_exact(path, side_copy)
                logger.warning("Unrecoverable config %s; original kept at %s", path, side_copy)
                self.create_template(path)
                return True
        else:
            if not validate_config(config):
                return False

        if not isinstance(config, dict):
            config = {}
        if not isinstance(config.get(HELPER_MAP_KEY), dict):
            config[HELPER_MAP_KEY] = {}
        self.write(path, config)
        return True

    @staticmethod
    def _salvage(text: str) -> dict[str, Any] | None:
        cleaned = _TRAILING_COMMA.sub(r"\1", _LINE_COMMENT.sub("", text))
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            return None
        return data if isinstance(data, dict) else None
