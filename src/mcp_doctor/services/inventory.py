"""Client inventory for MCP Doctor.

Enumerates installed target clients and the helper processes their
configuration files reference.

Classes
-------
ClientLocator
    Where a client kind keeps its config file on each platform, and which
    process names identify it.
ClientInventory
    ``detect()`` / ``is_client_running()`` over the host filesystem and
    process table.

Detection never raises: a kind whose config is absent yields no client, and
an unreadable or malformed config yields no client plus a logged warning.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import ClientKind, Platform
from mcp_doctor.domain.exceptions import DoctorError
from mcp_doctor.domain.values import DetectionResult
from mcp_doctor.infrastructure.config import InventoryConfig
from mcp_doctor.infrastructure.config_store import ConfigStore
from mcp_doctor.infrastructure.process_table import ProcessTable, PsutilProcessTable

logger = logging.getLogger(__name__)

RUNTIME_PROBE_TIMEOUT = 5.0


# ===================================================================== #
#  Platform probing                                                      #
# ===================================================================== #


def detect_platform() -> Platform:
    if sys.platform.startswith("win"):
        return Platform.WINDOWS
    if sys.platform == "darwin":
        return Platform.MACOS
    if not sys.platform.startswith("linux"):
        logger.warning("Unknown platform %s, defaulting to linux", sys.platform)
    return Platform.LINUX


def detect_wsl(proc_version: str | Path = "/proc/version") -> bool:
    """``True`` when the Linux kernel identifies itself as WSL."""
    if not sys.platform.startswith("linux"):
        return False
    try:
        release = Path(proc_version).read_text(encoding="utf-8", errors="replace").lower()
    except OSError as exc:
        logger.debug("Failed to read %s: %s", proc_version, exc)
        return False
    return "microsoft" in release or "wsl" in release


def _run(argv: Sequence[str], timeout: float = RUNTIME_PROBE_TIMEOUT) -> str | None:
    """Run *argv* and return its stripped stdout, or ``None`` on any failure."""
    try:
        completed = subprocess.run(
            list(argv),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("Command %s failed: %s", argv[0], exc)
        return None
    return completed.stdout.strip() or None


def detect_runtime_version() -> str | None:
    """Version of the helper runtime (``node --version``), bounded by a timeout."""
    return _run(["node", "--version"])


def windows_home_from_wsl() -> Path | None:
    """Translate ``%USERPROFILE%`` into a ``/mnt/...`` path under WSL."""
    profile = _run(["wslvar", "USERPROFILE"])
    if not profile:
        return None
    translated = _run(["wslpath", "-u", profile])
    return Path(translated) if translated else None


# ===================================================================== #
#  Locators                                                              #
# ===================================================================== #


@dataclass(frozen=True)
class ClientLocator:
    """Well-known config locations for one client kind.

    ``paths`` maps each platform to the config path relative to the user's
    home.  ``windows_path`` is the Windows-home-relative path used as the
    fallback when running under WSL.
    """

    kind: ClientKind
    display_name: str
    process_names: tuple[str, ...] = ()
    paths: Mapping[Platform, str] = field(default_factory=dict)
    windows_path: str | None = None

    def candidates(
        self,
        platform: Platform,
        home: Path,
        windows_home: Path | None = None,
    ) -> list[Path]:
        """Candidate config paths, most specific first."""
        found: list[Path] = []
        if windows_home is not None and self.windows_path:
            found.append(windows_home / self.windows_path)
        relative = self.paths.get(platform)
        if relative:
            found.append(home / relative)
        return found


_CLINE_SETTINGS = "User/globalStorage/saoudrizwan.claude-dev/settings/cline_mcp_settings.json"

DEFAULT_LOCATORS: tuple[ClientLocator, ...] = (
    ClientLocator(
        kind=ClientKind.CLAUDE_DESKTOP,
        display_name="Claude Desktop",
        process_names=("Claude",),
        paths={
            Platform.WINDOWS: "AppData/Roaming/Claude/claude_desktop_config.json",
            Platform.MACOS: "Library/Application Support/Claude/claude_desktop_config.json",
        },
        windows_path="AppData/Roaming/Claude/claude_desktop_config.json",
    ),
    ClientLocator(
        kind=ClientKind.WINDSURF,
        display_name="Windsurf Editor",
        process_names=("Windsurf",),
        paths={
            Platform.WINDOWS: ".codeium/windsurf/mcp_config.json",
            Platform.MACOS: ".codeium/windsurf/mcp_config.json",
            Platform.LINUX: ".codeium/windsurf/mcp_config.json",
        },
        windows_path=".codeium/windsurf/mcp_config.json",
    ),
    ClientLocator(
        kind=ClientKind.CURSOR,
        display_name="Cursor",
        process_names=("Cursor",),
        paths={
            Platform.WINDOWS: f"AppData/Roaming/Cursor/{_CLINE_SETTINGS}",
            Platform.MACOS: f"Library/Application Support/Cursor/{_CLINE_SETTINGS}",
            Platform.LINUX: f".config/Cursor/{_CLINE_SETTINGS}",
        },
        windows_path=f"AppData/Roaming/Cursor/{_CLINE_SETTINGS}",
    ),
)


# ===================================================================== #
#  Inventory                                                             #
# ===================================================================== #


class ClientInventory:
    """Detects target clients and checks their liveness.

    Parameters
    ----------
    config:
        Extra custom config paths and an optional home override.
    process_table:
        Source of running processes.  Defaults to :class:`PsutilProcessTable`.
    config_store:
        Used to parse helper maps.
    platform, is_wsl:
        Overrides for the host probes (tests, remote diagnosis).
    runtime_probe:
        Callable returning the helper runtime version; ``None`` disables it.
    windows_home_probe:
        Callable resolving the Windows home under WSL.
    locators:
        Known client kinds; defaults to :data:`DEFAULT_LOCATORS`.
    """

    def __init__(
        self,
        config: InventoryConfig | None = None,
        process_table: ProcessTable | None = None,
        config_store: ConfigStore | None = None,
        platform: Platform | None = None,
        is_wsl: bool | None = None,
        runtime_probe: Callable[[], str | None] | None = detect_runtime_version,
        windows_home_probe: Callable[[], Path | None] = windows_home_from_wsl,
        locators: Sequence[ClientLocator] = DEFAULT_LOCATORS,
    ) -> None:
        self._config = config or InventoryConfig()
        self._process_table = process_table or PsutilProcessTable()
        self._store = config_store or ConfigStore()
        self._platform = platform if platform is not None else detect_platform()
        self._is_wsl = is_wsl if is_wsl is not None else detect_wsl()
        self._runtime_probe = runtime_probe
        self._windows_home_probe = windows_home_probe
        self._locators = {loc.kind: loc for loc in locators}

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def is_wsl(self) -> bool:
        return self._is_wsl

    @property
    def home(self) -> Path:
        return Path(self._config.home).expanduser() if self._config.home else Path.home()

    def locator(self, kind: ClientKind) -> ClientLocator | None:
        return self._locators.get(kind)

    # -- detection ----------------------------------------------------------

    def detect(self) -> DetectionResult:
        """Enumerate installed clients and their helper processes."""
        logger.info("Starting client detection on %s", self._platform.value)
        windows_home = None
        if self._is_wsl:
            try:
                windows_home = self._windows_home_probe()
            except Exception:
                logger.exception("Windows home lookup failed")

        clients: list[TargetClient] = []
        for locator in self._locators.values():
            client = self._detect_kind(locator, windows_home)
            if client is not None:
                clients.append(client)
        clients.extend(self._detect_custom(clients))

        runtime_version = None
        if self._runtime_probe is not None:
            try:
                runtime_version = self._runtime_probe()
            except Exception:
                logger.exception("Runtime version probe failed")

        logger.info("Detection complete: found %d clients", len(clients))
        return DetectionResult(
            platform=self._platform,
            is_wsl=self._is_wsl,
            runtime_version=runtime_version,
            clients=tuple(clients),
        )

    def _detect_kind(
        self, locator: ClientLocator, windows_home: Path | None
    ) -> TargetClient | None:
        for path in locator.candidates(self._platform, self.home, windows_home):
            if not path.exists():
                logger.debug("%s config not found at %s", locator.display_name, path)
                continue
            return self._load_client(locator.kind, locator.display_name, path)
        return None

    def _detect_custom(self, known: Sequence[TargetClient]) -> list[TargetClient]:
        seen = {c.config_path for c in known}
        custom: list[TargetClient] = []
        for raw in self._config.custom_config_paths:
            path = Path(raw).expanduser()
            if str(path) in seen or not path.exists():
                continue
            client = self._load_client(ClientKind.CUSTOM, f"Custom ({path.name})", path)
            if client is not None:
                custom.append(client)
                seen.add(str(path))
        return custom

    def _load_client(
        self, kind: ClientKind, display_name: str, path: Path
    ) -> TargetClient | None:
        try:
            helpers = self._store.read_helpers(path)
            client = TargetClient(kind=kind, display_name=display_name, config_path=str(path))
            client.replace_helpers(helpers)
        except (DoctorError, ValueError) as exc:
            logger.warning("Skipping %s: %s", display_name, exc)
            return None
        return client

    def refresh(self, client: TargetClient) -> bool:
        """Re-read *client*'s helper list from disk.

        Returns ``False`` (leaving the helper list untouched) when the config
        can no longer be read.
        """
        try:
            client.replace_helpers(self._store.read_helpers(client.config_path))
        except (DoctorError, ValueError) as exc:
            logger.warning("Failed to refresh %s: %s", client.display_name, exc)
            return False
        return True

    # -- liveness -----------------------------------------------------------

    def is_client_running(self, client: TargetClient) -> bool:
        """Inspect the process table for a name/command match.

        Custom clients have no known process name and are never reported as
        running.  Enumeration failure degrades to ``False``.
        """
        locator = self._locators.get(client.kind)
        if locator is None or not locator.process_names:
            return False
        try:
            return self._process_table.any_matching(locator.process_names)
        except Exception:
            logger.exception("Failed to check if %s is running", client.display_name)
            return False

