"""Shared fixtures for the MCP Doctor test suite.

Everything runs against a fake home directory under ``tmp_path`` laid out
like a macOS user profile, with a static process table so no real client
or process is ever touched.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from mcp_doctor.domain.entities import HelperProcess, TargetClient
from mcp_doctor.domain.enums import ClientKind, ErrorKind, Platform
from mcp_doctor.domain.values import ClassifiedError, IsolationResult
from mcp_doctor.infrastructure.config import BackupConfig, InventoryConfig
from mcp_doctor.infrastructure.config_store import ConfigStore
from mcp_doctor.infrastructure.event_bus import EventBus
from mcp_doctor.infrastructure.locks import KeyLockRegistry
from mcp_doctor.infrastructure.process_table import StaticProcessTable
from mcp_doctor.services.backup import BackupStore
from mcp_doctor.services.inventory import ClientInventory
from mcp_doctor.services.isolation import IsolationLeaf, RootCauseIsolator
from mcp_doctor.services.log_classifier import LogClassifier

CLAUDE_CONFIG = "Library/Application Support/Claude/claude_desktop_config.json"
CLAUDE_LOGS = "Library/Logs/Claude"


def write_config(path: Path, servers: dict[str, Any], **extra: Any) -> Path:
    """Write a client config with the given ``mcpServers`` map."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"mcpServers": servers, **extra}, indent=2), encoding="utf-8")
    return path


def append_log(home: Path, server: str, *lines: str) -> Path:
    """Append lines to Claude Desktop's log for *server*."""
    path = home / CLAUDE_LOGS / f"mcp-server-{server}.log"
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        for line in lines:
            fh.write(line + "\n")
    return path


# ---------------------------------------------------------------------------
# File-system fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def claude_config(home: Path) -> Path:
    """Claude Desktop config with one npx-based server and a custom key."""
    return write_config(
        home / CLAUDE_CONFIG,
        {
            "filesystem": {
                "command": "npx",
                "args": ["-y", "@modelcontextprotocol/server-filesystem", "/tmp"],
                "env": {},
            },
        },
        globalShortcut="Ctrl+Space",
    )


@pytest.fixture
def client(claude_config: Path) -> TargetClient:
    c = TargetClient(
        kind=ClientKind.CLAUDE_DESKTOP,
        display_name="Claude Desktop",
        config_path=str(claude_config),
    )
    c.replace_helpers(ConfigStore().read_helpers(claude_config))
    return c


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    return tmp_path / "backups"


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def locks() -> KeyLockRegistry:
    return KeyLockRegistry()


@pytest.fixture
def process_table() -> StaticProcessTable:
    return StaticProcessTable(["Claude"])


@pytest.fixture
def inventory(home: Path, process_table: StaticProcessTable) -> ClientInventory:
    return ClientInventory(
        config=InventoryConfig(home=str(home)),
        process_table=process_table,
        platform=Platform.MACOS,
        is_wsl=False,
        runtime_probe=None,
    )


@pytest.fixture
def classifier(home: Path) -> LogClassifier:
    return LogClassifier(platform=Platform.MACOS, home=home)


@pytest.fixture
def quiet_isolator() -> RootCauseIsolator:
    """An isolator whose tree never finds anything (no PATH dependence)."""
    return RootCauseIsolator(
        tree=IsolationLeaf(IsolationResult(ErrorKind.UNKNOWN, "No root cause isolated")),
    )


@pytest.fixture
def backups(backup_dir: Path, locks: KeyLockRegistry, event_bus: EventBus) -> BackupStore:
    return BackupStore(backup_dir, BackupConfig(), locks=locks, event_bus=event_bus)


# ---------------------------------------------------------------------------
# Value fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def npx_missing(client: TargetClient) -> ClassifiedError:
    return ClassifiedError(
        kind=ErrorKind.PATH,
        message='Command "npx" not found in PATH',
        evidence="Error: spawn npx ENOENT",
        helper=client.helper("filesystem"),
        client=client,
        fixable=True,
    )


@pytest.fixture
def helper() -> HelperProcess:
    return HelperProcess(name="github", command="node", args=("server.js",), env={"TOKEN": "x"})


# ---------------------------------------------------------------------------
# Helper fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config_writer():
    """``config_writer(path, servers, **extra)`` writes a client config."""
    return write_config


@pytest.fixture
def log_writer(home: Path):
    """``log_writer(server, *lines)`` appends to Claude Desktop's server log."""

    def _write(server: str, *lines: str) -> Path:
        return append_log(home, server, *lines)

    return _write
