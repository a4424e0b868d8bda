"""Tests for ClientInventory detection and liveness."""

from __future__ import annotations

from pathlib import Path

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import ClientKind, Platform
from mcp_doctor.infrastructure.config import InventoryConfig
from mcp_doctor.infrastructure.process_table import StaticProcessTable
from mcp_doctor.services.inventory import (
    DEFAULT_LOCATORS,
    ClientInventory,
    ClientLocator,
    detect_wsl,
)


def _inventory(home: Path, **kwargs) -> ClientInventory:
    kwargs.setdefault("process_table", StaticProcessTable())
    kwargs.setdefault("platform", Platform.MACOS)
    kwargs.setdefault("is_wsl", False)
    kwargs.setdefault("runtime_probe", None)
    config = kwargs.pop("config", InventoryConfig(home=str(home)))
    return ClientInventory(config=config, **kwargs)


# ===================================================================== #
#  Detection                                                             #
# ===================================================================== #


class TestDetect:
    def test_empty_home(self, home: Path) -> None:
        result = _inventory(home).detect()
        assert result.clients == ()
        assert result.platform is Platform.MACOS
        assert result.runtime_version is None

    def test_finds_claude_with_helpers(self, inventory: ClientInventory, claude_config: Path) -> None:
        result = inventory.detect()
        assert len(result.clients) == 1
        client = result.clients[0]
        assert client.kind is ClientKind.CLAUDE_DESKTOP
        assert client.config_path == str(claude_config)
        assert client.helper_names == ["filesystem"]

    def test_multiple_kinds(self, home: Path, claude_config: Path, config_writer) -> None:
        config_writer(home / ".codeium/windsurf/mcp_config.json", {"a": {"command": "uvx"}})
        kinds = [c.kind for c in _inventory(home).detect().clients]
        assert kinds == [ClientKind.CLAUDE_DESKTOP, ClientKind.WINDSURF]

    def test_malformed_config_skipped(self, home: Path, claude_config: Path) -> None:
        claude_config.write_text("{broken", encoding="utf-8")
        assert _inventory(home).detect().clients == ()

    def test_platform_specific_paths(self, home: Path, claude_config: Path) -> None:
        # Claude Desktop has no Linux build.
        assert _inventory(home, platform=Platform.LINUX).detect().clients == ()

    def test_wsl_uses_windows_home(self, home: Path, tmp_path: Path, config_writer) -> None:
        windows_home = tmp_path / "mnt" / "c" / "Users" / "me"
        config_writer(
            windows_home / "AppData/Roaming/Claude/claude_desktop_config.json",
            {"fs": {"command": "npx"}},
        )
        inventory = _inventory(
            home, platform=Platform.LINUX, is_wsl=True, windows_home_probe=lambda: windows_home
        )
        clients = inventory.detect().clients
        assert [c.kind for c in clients] == [ClientKind.CLAUDE_DESKTOP]
        assert clients[0].config_path.startswith(str(windows_home))

    def test_custom_paths(self, home: Path, tmp_path: Path, config_writer) -> None:
        custom = config_writer(tmp_path / "team" / "mcp.json", {"x": {"command": "node"}})
        config = InventoryConfig(home=str(home), custom_config_paths=[str(custom), str(tmp_path / "nope.json")])
        clients = _inventory(home, config=config).detect().clients
        assert len(clients) == 1
        assert clients[0].kind is ClientKind.CUSTOM
        assert clients[0].display_name == "Custom (mcp.json)"

    def test_probe_failures_are_contained(self, home: Path) -> None:
        def broken() -> str:
            raise RuntimeError("no node")

        result = _inventory(home, runtime_probe=broken).detect()
        assert result.runtime_version is None

    def test_custom_locators(self, home: Path, config_writer) -> None:
        config_writer(home / "cfg.json", {"a": {"command": "node"}})
        locator = ClientLocator(
            kind=ClientKind.CURSOR, display_name="Mine", paths={Platform.MACOS: "cfg.json"}
        )
        clients = _inventory(home, locators=[locator]).detect().clients
        assert [c.display_name for c in clients] == ["Mine"]

    def test_refresh(self, inventory: ClientInventory, client: TargetClient, claude_config: Path, config_writer) -> None:
        config_writer(claude_config, {"a": {"command": "node"}, "b": {"command": "uvx"}})
        assert inventory.refresh(client)
        assert client.helper_names == ["a", "b"]

        claude_config.unlink()
        assert not inventory.refresh(client)
        assert client.helper_names == ["a", "b"]


# ===================================================================== #
#  Liveness                                                              #
# ===================================================================== #


class TestIsClientRunning:
    def test_running(self, inventory: ClientInventory, client: TargetClient) -> None:
        assert inventory.is_client_running(client)

    def test_not_running(self, home: Path, client: TargetClient) -> None:
        assert not _inventory(home, process_table=StaticProcessTable(["Cursor"])).is_client_running(client)

    def test_custom_never_running(self, inventory: ClientInventory) -> None:
        custom = TargetClient(ClientKind.CUSTOM, "Custom", "/x.json")
        assert not inventory.is_client_running(custom)


class TestHostProbes:
    def test_default_locators_cover_known_kinds(self) -> None:
        kinds = {loc.kind for loc in DEFAULT_LOCATORS}
        assert kinds == {ClientKind.CLAUDE_DESKTOP, ClientKind.WINDSURF, ClientKind.CURSOR}

    def test_detect_wsl_missing_file(self, tmp_path: Path) -> None:
        assert detect_wsl(tmp_path / "version") is False
