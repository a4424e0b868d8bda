"""Serialization utilities for MCP Doctor.

Provides ``to_dict`` / ``from_dict`` round-trip conversion for the domain
value objects and entities that leave the process: the backup index, the
repair history, ``--json`` CLI output and status snapshots handed to
external consumers.  JSON is always available; YAML support is optional
(graceful fallback if ``pyyaml`` is not installed).

Design goals:
- Every ``to_dict`` output is JSON-serializable (no enums, no datetimes,
  no tuples of dataclasses).
- Timestamps are written as ISO-8601 strings and parsed back into aware
  ``datetime`` objects.
- ``from_dict`` reconstructors accept permissive input and raise
  ``ValueError`` / ``KeyError`` for truly unrecoverable data.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from mcp_doctor.domain.entities import HelperProcess, TargetClient
from mcp_doctor.domain.enums import (
    ChangeKind,
    ClientKind,
    ErrorKind,
    FixSource,
    HealthLevel,
    Platform,
    ProcessStatus,
    RepairPhase,
)
from mcp_doctor.domain.values import (
    AdvisorSuggestion,
    BackupRecord,
    CheckResult,
    ClassifiedError,
    ClientHealth,
    DetectionResult,
    HelperHealth,
    HistoryEntry,
    IsolationReport,
    IsolationResult,
    RepairChange,
    RepairFix,
    RepairPlan,
    RepairReport,
    SelfTestResult,
    SystemStatus,
)

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
#  Optional YAML support                                                       #
# --------------------------------------------------------------------------- #

try:
    import yaml as _yaml  # type: ignore[import-untyped]

    _HAS_YAML = True
except ImportError:  # pragma: no cover
    _yaml = None  # type: ignore[assignment]
    _HAS_YAML = False


# =========================================================================== #
#  Generic helpers                                                             #
# =========================================================================== #

def _enum_val(v: Any) -> Any:
    """Return the ``.value`` if *v* is an enum member, else *v* unchanged."""
    if hasattr(v, "value"):
        return v.value
    return v


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 with an explicit UTC offset."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.isoformat()


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    ts = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _plain(value: Any) -> Any:
    """Make change payloads (tuples, mappings) JSON-friendly."""
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return _enum_val(value)


# =========================================================================== #
#  Entities                                                                    #
# =========================================================================== #

def helper_to_dict(h: HelperProcess) -> dict[str, Any]:
    return {
        "name": h.name,
        "command": h.command,
        "args": list(h.args),
        "env": dict(h.env),
        "status": _enum_val(h.status),
    }


def helper_from_dict(data: dict[str, Any]) -> HelperProcess:
    return HelperProcess(
        name=str(data["name"]),
        command=str(data.get("command", "")),
        args=tuple(str(a) for a in data.get("args", [])),
        env={str(k): str(v) for k, v in dict(data.get("env", {})).items()},
        status=ProcessStatus(data.get("status", "unknown")),
    )


def client_to_dict(c: TargetClient, *, include_helpers: bool = True) -> dict[str, Any]:
    d: dict[str, Any] = {
        "kind": _enum_val(c.kind),
        "display_name": c.display_name,
        "config_path": c.config_path,
    }
    if include_helpers:
        d["helpers"] = [helper_to_dict(h) for h in c.helpers]
    return d


def client_from_dict(data: dict[str, Any]) -> TargetClient:
    return TargetClient(
        kind=ClientKind(data["kind"]),
        display_name=str(data.get("display_name", data["kind"])),
        config_path=str(data["config_path"]),
        helpers=[helper_from_dict(h) for h in data.get("helpers", [])],
    )


# =========================================================================== #
#  Diagnoses and health                                                        #
# =========================================================================== #

def classified_error_to_dict(e: ClassifiedError) -> dict[str, Any]:
    return {
        "kind": _enum_val(e.kind),
        "message": e.message,
        "evidence": e.evidence,
        "fixable": e.fixable,
        "helper": helper_to_dict(e.helper) if e.helper is not None else None,
        # Client references are written without helpers to keep records flat.
        "client": client_to_dict(e.client, include_helpers=False) if e.client is not None else None,
    }


def classified_error_from_dict(data: dict[str, Any]) -> ClassifiedError:
    helper = data.get("helper")
    client = data.get("client")
    return ClassifiedError(
        kind=ErrorKind(data["kind"]),
        message=str(data["message"]),
        evidence=str(data.get("evidence", "")),
        helper=helper_from_dict(helper) if helper else None,
        client=client_from_dict(client) if client else None,
        fixable=bool(data.get("fixable", False)),
    )


def helper_health_to_dict(h: HelperHealth) -> dict[str, Any]:
    return {
        "health": _enum_val(h.health),
        "errors": [classified_error_to_dict(e) for e in h.errors],
    }


def helper_health_from_dict(data: dict[str, Any]) -> HelperHealth:
    return HelperHealth(
        health=HealthLevel(data.get("health", "healthy")),
        errors=tuple(classified_error_from_dict(e) for e in data.get("errors", [])),
    )


def client_health_to_dict(ch: ClientHealth) -> dict[str, Any]:
    return {
        "client": client_to_dict(ch.client),
        "health": _enum_val(ch.health),
        "running": ch.running,
        "helpers": {name: helper_health_to_dict(h) for name, h in ch.helpers.items()},
    }


def client_health_from_dict(data: dict[str, Any]) -> ClientHealth:
    return ClientHealth(
        client=client_from_dict(data["client"]),
        health=HealthLevel(data.get("health", "healthy")),
        running=bool(data.get("running", False)),
        helpers={
            str(name): helper_health_from_dict(h)
            for name, h in dict(data.get("helpers", {})).items()
        },
    )


def system_status_to_dict(s: SystemStatus) -> dict[str, Any]:
    """Clients are written as a list; the mapping key is the client itself."""
    return {
        "overall": _enum_val(s.overall),
        "checked_at": format_timestamp(s.checked_at),
        "clients": [client_health_to_dict(ch) for ch in s.clients.values()],
    }


def system_status_from_dict(data: dict[str, Any]) -> SystemStatus:
    clients = [client_health_from_dict(c) for c in data.get("clients", [])]
    return SystemStatus(
        overall=HealthLevel(data.get("overall", "healthy")),
        clients={ch.client: ch for ch in clients},
        checked_at=parse_timestamp(data["checked_at"]),
    )


def detection_result_to_dict(d: DetectionResult) -> dict[str, Any]:
    return {
        "platform": _enum_val(d.platform),
        "is_wsl": d.is_wsl,
        "runtime_version": d.runtime_version,
        "clients": [client_to_dict(c) for c in d.clients],
    }


def detection_result_from_dict(data: dict[str, Any]) -> DetectionResult:
    return DetectionResult(
        platform=Platform(data["platform"]),
        is_wsl=bool(data.get("is_wsl", False)),
        runtime_version=data.get("runtime_version"),
        clients=tuple(client_from_dict(c) for c in data.get("clients", [])),
    )


def isolation_result_to_dict(r: IsolationResult) -> dict[str, Any]:
    return {
        "error_kind": _enum_val(r.error_kind),
        "description": r.description,
        "evidence": r.evidence,
        "fixable": r.fixable,
    }


def isolation_result_from_dict(data: dict[str, Any]) -> IsolationResult:
    return IsolationResult(
        error_kind=ErrorKind(data["error_kind"]),
        description=str(data["description"]),
        evidence=str(data.get("evidence", "")),
        fixable=bool(data.get("fixable", False)),
    )


def isolation_report_to_dict(r: IsolationReport) -> dict[str, Any]:
    return {
        "result": isolation_result_to_dict(r.result),
        "trace": [{"probe": name, "outcome": outcome} for name, outcome in r.trace],
    }


def isolation_report_from_dict(data: dict[str, Any]) -> IsolationReport:
    return IsolationReport(
        result=isolation_result_from_dict(data["result"]),
        trace=tuple((str(t["probe"]), bool(t["outcome"])) for t in data.get("trace", [])),
    )


# =========================================================================== #
#  Backups                                                                     #
# =========================================================================== #

def backup_record_to_dict(b: BackupRecord) -> dict[str, Any]:
    return {
        "id": b.backup_id,
        "client_kind": _enum_val(b.client_kind),
        "config_path": b.config_path,
        "snapshot_path": b.snapshot_path,
        "created_at": format_timestamp(b.created_at),
        "helpers": [helper_to_dict(h) for h in b.helpers],
    }


def backup_record_from_dict(data: dict[str, Any]) -> BackupRecord:
    return BackupRecord(
        backup_id=str(data["id"]),
        client_kind=ClientKind(data["client_kind"]),
        config_path=str(data["config_path"]),
        snapshot_path=str(data["snapshot_path"]),
        created_at=parse_timestamp(data["created_at"]),
        helpers=tuple(helper_from_dict(h) for h in data.get("helpers", [])),
    )


# =========================================================================== #
#  Repair plans and outcomes                                                   #
# =========================================================================== #

def repair_change_to_dict(c: RepairChange) -> dict[str, Any]:
    return {
        "kind": _enum_val(c.kind),
        "description": c.description,
        "helper_name": c.helper_name,
        "before": _plain(c.before),
        "after": _plain(c.after),
    }


def repair_change_from_dict(data: dict[str, Any]) -> RepairChange:
    return RepairChange(
        kind=ChangeKind(data["kind"]),
        description=str(data.get("description", "")),
        helper_name=data.get("helper_name"),
        before=data.get("before"),
        after=data.get("after"),
    )


def repair_fix_to_dict(f: RepairFix) -> dict[str, Any]:
    return {
        "error": classified_error_to_dict(f.error),
        "description": f.description,
        "changes": [repair_change_to_dict(c) for c in f.changes],
        "automatic": f.automatic,
        "source": _enum_val(f.source),
        "confidence": f.confidence,
        "steps": list(f.steps),
        "template": f.template,
    }


def repair_fix_from_dict(data: dict[str, Any]) -> RepairFix:
    confidence = data.get("confidence")
    return RepairFix(
        error=classified_error_from_dict(data["error"]),
        description=str(data["description"]),
        changes=tuple(repair_change_from_dict(c) for c in data.get("changes", [])),
        automatic=bool(data.get("automatic", False)),
        source=FixSource(data.get("source", "template")),
        confidence=float(confidence) if confidence is not None else None,
        steps=tuple(str(s) for s in data.get("steps", [])),
        template=str(data.get("template", "")),
    )


def repair_plan_to_dict(p: RepairPlan) -> dict[str, Any]:
    return {
        "client": client_to_dict(p.client),
        "errors": [classified_error_to_dict(e) for e in p.errors],
        "fixes": [repair_fix_to_dict(f) for f in p.fixes],
        "requires_confirmation": p.requires_confirmation,
    }


def repair_plan_from_dict(data: dict[str, Any]) -> RepairPlan:
    return RepairPlan(
        client=client_from_dict(data["client"]),
        errors=tuple(classified_error_from_dict(e) for e in data.get("errors", [])),
        fixes=tuple(repair_fix_from_dict(f) for f in data.get("fixes", [])),
    )


def repair_report_to_dict(r: RepairReport) -> dict[str, Any]:
    return {
        "report_id": r.report_id,
        "client": client_to_dict(r.client),
        "plan": repair_plan_to_dict(r.plan),
        "phase": _enum_val(r.phase),
        "phases": [_enum_val(p) for p in r.phases],
        "applied_changes": [repair_change_to_dict(c) for c in r.applied_changes],
        "skipped_fixes": [repair_fix_to_dict(f) for f in r.skipped_fixes],
        "backup_id": r.backup_id,
        "reason": r.reason,
        "health_before": _enum_val(r.health_before) if r.health_before else None,
        "health_after": _enum_val(r.health_after) if r.health_after else None,
        "requires_manual_intervention": r.requires_manual_intervention,
        "dry_run": r.dry_run,
        "started_at": format_timestamp(r.started_at),
        "finished_at": format_timestamp(r.finished_at),
        "explanation": r.explain(),
    }


def repair_report_from_dict(data: dict[str, Any]) -> RepairReport:
    before = data.get("health_before")
    after = data.get("health_after")
    return RepairReport(
        client=client_from_dict(data["client"]),
        plan=repair_plan_from_dict(data["plan"]),
        phase=RepairPhase(data["phase"]),
        report_id=str(data.get("report_id", "")),
        phases=tuple(RepairPhase(p) for p in data.get("phases", [])),
        applied_changes=tuple(
            repair_change_from_dict(c) for c in data.get("applied_changes", [])
        ),
        skipped_fixes=tuple(repair_fix_from_dict(f) for f in data.get("skipped_fixes", [])),
        backup_id=data.get("backup_id"),
        reason=str(data.get("reason", "")),
        health_before=HealthLevel(before) if before else None,
        health_after=HealthLevel(after) if after else None,
        requires_manual_intervention=bool(data.get("requires_manual_intervention", False)),
        dry_run=bool(data.get("dry_run", False)),
        started_at=parse_timestamp(data["started_at"]),
        finished_at=parse_timestamp(data["finished_at"]),
    )


def history_entry_to_dict(h: HistoryEntry) -> dict[str, Any]:
    return {
        "entry_id": h.entry_id,
        "timestamp": format_timestamp(h.timestamp),
        "client_kind": _enum_val(h.client_kind),
        "config_path": h.config_path,
        "outcome": _enum_val(h.outcome),
        "fixes": list(h.fixes),
        "changes": [repair_change_to_dict(c) for c in h.changes],
        "error_kinds": [_enum_val(k) for k in h.error_kinds],
        "reason": h.reason,
        "backup_id": h.backup_id,
        "requires_manual_intervention": h.requires_manual_intervention,
        "metadata": _plain(dict(h.metadata)),
    }


def history_entry_from_dict(data: dict[str, Any]) -> HistoryEntry:
    return HistoryEntry(
        client_kind=ClientKind(data["client_kind"]),
        config_path=str(data["config_path"]),
        outcome=RepairPhase(data["outcome"]),
        entry_id=str(data.get("entry_id", "")),
        timestamp=parse_timestamp(data["timestamp"]),
        fixes=tuple(str(f) for f in data.get("fixes", [])),
        changes=tuple(repair_change_from_dict(c) for c in data.get("changes", [])),
        error_kinds=tuple(ErrorKind(k) for k in data.get("error_kinds", [])),
        reason=str(data.get("reason", "")),
        backup_id=data.get("backup_id"),
        requires_manual_intervention=bool(data.get("requires_manual_intervention", False)),
        metadata=dict(data.get("metadata", {})),
    )


def advisor_suggestion_to_dict(s: AdvisorSuggestion) -> dict[str, Any]:
    return {
        "error_kind": _enum_val(s.error_kind),
        "description": s.description,
        "steps": list(s.steps),
        "confidence": s.confidence,
    }


def advisor_suggestion_from_dict(data: dict[str, Any]) -> AdvisorSuggestion:
    return AdvisorSuggestion(
        error_kind=ErrorKind(data["error_kind"]),
        description=str(data["description"]),
        steps=tuple(str(s) for s in data.get("steps", [])),
        confidence=float(data.get("confidence", 0.5)),
    )


def self_test_to_dict(r: SelfTestResult) -> dict[str, Any]:
    return {
        "timestamp": format_timestamp(r.timestamp),
        "all_passed": r.all_passed,
        "results": [
            {"name": c.name, "passed": c.passed, "description": c.description, "error": c.error}
            for c in r.results
        ],
    }


def self_test_from_dict(data: dict[str, Any]) -> SelfTestResult:
    return SelfTestResult(
        results=tuple(
            CheckResult(
                name=str(c["name"]),
                passed=bool(c["passed"]),
                description=str(c.get("description", "")),
                error=str(c.get("error", "")),
            )
            for c in data.get("results", [])
        ),
        timestamp=parse_timestamp(data["timestamp"]),
    )


# =========================================================================== #
#  Unified serializer                                                          #
# =========================================================================== #

# Maps type -> (to_dict_fn, from_dict_fn)
_SERIALIZERS: dict[type, tuple[Any, Any]] = {
    HelperProcess: (helper_to_dict, helper_from_dict),
    TargetClient: (client_to_dict, client_from_dict),
    ClassifiedError: (classified_error_to_dict, classified_error_from_dict),
    HelperHealth: (helper_health_to_dict, helper_health_from_dict),
    ClientHealth: (client_health_to_dict, client_health_from_dict),
    SystemStatus: (system_status_to_dict, system_status_from_dict),
    DetectionResult: (detection_result_to_dict, detection_result_from_dict),
    IsolationResult: (isolation_result_to_dict, isolation_result_from_dict),
    IsolationReport: (isolation_report_to_dict, isolation_report_from_dict),
    BackupRecord: (backup_record_to_dict, backup_record_from_dict),
    RepairChange: (repair_change_to_dict, repair_change_from_dict),
    RepairFix: (repair_fix_to_dict, repair_fix_from_dict),
    RepairPlan: (repair_plan_to_dict, repair_plan_from_dict),
    RepairReport: (repair_report_to_dict, repair_report_from_dict),
    HistoryEntry: (history_entry_to_dict, history_entry_from_dict),
    AdvisorSuggestion: (advisor_suggestion_to_dict, advisor_suggestion_from_dict),
    SelfTestResult: (self_test_to_dict, self_test_from_dict),
}


def serialize(obj: Any) -> dict[str, Any]:
    """Serialize a known domain object to a dict.

    Objects with their own ``to_dict()`` (the config dataclasses) are
    delegated to it.  Raises ``TypeError`` for unsupported types.
    """
    ser = _SERIALIZERS.get(type(obj))
    if ser is not None:
        to_fn, _ = ser
        return to_fn(obj)
    if hasattr(obj, "to_dict") and callable(obj.to_dict):
        return obj.to_dict()
    raise TypeError(f"Cannot serialize object of type {type(obj).__name__}")


def deserialize(data: dict[str, Any], target_type: type) -> Any:
    """Deserialize a dict into *target_type*."""
    ser = _SERIALIZERS.get(target_type)
    if ser is not None:
        _, from_fn = ser
        return from_fn(data)
    if hasattr(target_type, "from_dict"):
        return target_type.from_dict(data)
    raise TypeError(f"No deserializer registered for {target_type.__name__}")


# =========================================================================== #
#  JSON helpers                                                                #
# =========================================================================== #

def to_json(obj: Any, *, indent: int | None = 2) -> str:
    """Serialize a domain object (or a list of them) to a JSON string."""
    if isinstance(obj, (list, tuple)):
        d: Any = [serialize(o) for o in obj]
    else:
        d = serialize(obj)
    return json.dumps(d, indent=indent, default=str)


def from_json(json_str: str, target_type: type) -> Any:
    """Deserialize a JSON string into *target_type*."""
    data = json.loads(json_str)
    return deserialize(data, target_type)


# =========================================================================== #
#  YAML helpers (optional)                                                     #
# =========================================================================== #

def to_yaml(obj: Any) -> str:
    """Serialize a domain object to a YAML string.

    Raises ``RuntimeError`` if PyYAML is not installed.
    """
    if not _HAS_YAML:
        raise RuntimeError(
            "PyYAML is not installed. Install it with: pip install pyyaml"
        )
    if isinstance(obj, (list, tuple)):
        d: Any = [serialize(o) for o in obj]
    else:
        d = serialize(obj)
    return _yaml.dump(d, default_flow_style=False, sort_keys=False)


def yaml_available() -> bool:
    """Return ``True`` if PyYAML is importable."""
    return _HAS_YAML
