"""Tests for domain entities (HelperProcess, TargetClient)."""

from __future__ import annotations

import pytest

from mcp_doctor.domain.entities import HelperProcess, TargetClient
from mcp_doctor.domain.enums import ClientKind, ProcessStatus

# ===================================================================== #
#  HelperProcess                                                         #
# ===================================================================== #


class TestHelperProcess:
    def test_from_config_entry(self) -> None:
        helper = HelperProcess.from_config_entry(
            "github", {"command": "npx", "args": ["-y", "server"], "env": {"TOKEN": "abc"}}
        )
        assert helper.name == "github"
        assert helper.command == "npx"
        assert helper.args == ("-y", "server")
        assert helper.env == {"TOKEN": "abc"}
        assert helper.status is ProcessStatus.UNKNOWN

    def test_mistyped_fields_degrade_to_empty(self) -> None:
        helper = HelperProcess.from_config_entry("x", {"command": None, "args": "oops", "env": []})
        assert helper.command == ""
        assert helper.args == ()
        assert helper.env == {}

    def test_to_config_entry_round_trip(self, helper: HelperProcess) -> None:
        entry = helper.to_config_entry()
        assert entry == {"command": "node", "args": ["server.js"], "env": {"TOKEN": "x"}}
        assert HelperProcess.from_config_entry(helper.name, entry) == helper

    def test_with_status_returns_copy(self, helper: HelperProcess) -> None:
        running = helper.with_status(ProcessStatus.RUNNING)
        assert running.status is ProcessStatus.RUNNING
        assert helper.status is ProcessStatus.UNKNOWN

    def test_command_line(self, helper: HelperProcess) -> None:
        assert helper.command_line == "node server.js"


# ===================================================================== #
#  TargetClient                                                          #
# ===================================================================== #


class TestTargetClient:
    def test_identity_is_kind_and_path(self) -> None:
        a = TargetClient(ClientKind.CURSOR, "Cursor", "/c.json", [HelperProcess("a")])
        b = TargetClient(ClientKind.CURSOR, "Cursor (again)", "/c.json")
        c = TargetClient(ClientKind.WINDSURF, "Windsurf", "/c.json")
        assert a == b
        assert hash(a) == hash(b)
        assert a != c
        assert a.key == (ClientKind.CURSOR, "/c.json")

    def test_helper_lookup(self, helper: HelperProcess) -> None:
        client = TargetClient(ClientKind.CUSTOM, "Custom", "/x.json", [helper])
        assert client.helper("github") is helper
        assert client.helper("missing") is None
        assert client.helper_names == ["github"]

    def test_replace_helpers_rejects_duplicate_names(self) -> None:
        client = TargetClient(ClientKind.CUSTOM, "Custom", "/x.json")
        with pytest.raises(ValueError, match="duplicate helper names"):
            client.replace_helpers([HelperProcess("a"), HelperProcess("a")])
        assert client.helpers == []

    def test_usable_as_dict_key(self) -> None:
        first = TargetClient(ClientKind.CURSOR, "Cursor", "/c.json")
        again = TargetClient(ClientKind.CURSOR, "Cursor", "/c.json", [HelperProcess("a")])
        mapping = {first: "value"}
        assert mapping[again] == "value"
