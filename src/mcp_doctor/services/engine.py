"""DoctorEngine: the programmatic surface of MCP Doctor.

Wires inventory, classifier, health evaluator, isolator, planner, backup
store, executor, history and monitor together and exposes the verbs the
CLI (or any other shell) needs:

* :meth:`DoctorEngine.status`   -- one monitor cycle, as a structured result;
* :meth:`DoctorEngine.diagnose` -- per-client errors, isolation verdicts and
  remediation hints;
* :meth:`DoctorEngine.repair`   -- plan and execute repairs;
* :meth:`DoctorEngine.isolate`  -- run the decision tree for one helper;
* :meth:`DoctorEngine.self_test`.

Every result carries an ``exit_code``: ``0`` when healthy / succeeded,
``1`` otherwise.
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import ClientKind, ErrorKind, HealthLevel
from mcp_doctor.domain.exceptions import DoctorError
from mcp_doctor.domain.values import (
    CheckResult,
    ClassifiedError,
    ClientHealth,
    DetectionResult,
    IsolationReport,
    LogAnalysisResult,
    RepairReport,
    SelfTestResult,
    SystemStatus,
)
from mcp_doctor.infrastructure.config import DoctorConfig
from mcp_doctor.infrastructure.config_store import ConfigStore
from mcp_doctor.infrastructure.event_bus import EventBus, EventStore
from mcp_doctor.infrastructure.locks import KeyLockRegistry
from mcp_doctor.infrastructure.process_table import ProcessTable
from mcp_doctor.infrastructure.serialization import (
    client_health_to_dict,
    client_to_dict,
    classified_error_to_dict,
    detection_result_to_dict,
    isolation_report_to_dict,
    repair_report_to_dict,
    system_status_to_dict,
)
from mcp_doctor.services.advisor import BaseRepairAdvisor, LLMRepairAdvisor
from mcp_doctor.services.backup import BackupStore
from mcp_doctor.services.health import HealthEvaluator
from mcp_doctor.services.history import RepairHistory
from mcp_doctor.services.inventory import ClientInventory
from mcp_doctor.services.isolation import ProbeNode, RootCauseIsolator, depth, leaf_count
from mcp_doctor.services.log_classifier import LogClassifier, suggest_fixes
from mcp_doctor.services.monitor import MonitorLoop
from mcp_doctor.services.planning import RepairPlanner
from mcp_doctor.services.repair import RepairExecutor, exit_code
from mcp_doctor.services.verification import BaseVerifier, ClientVerifier

logger = logging.getLogger(__name__)

_EVENT_HISTORY = 500


# ===================================================================== #
#  Results                                                               #
# ===================================================================== #


@dataclass(frozen=True)
class StatusResult:
    status: SystemStatus

    @property
    def exit_code(self) -> int:
        return 0 if self.status.is_healthy else 1

    def to_dict(self) -> dict[str, Any]:
        return {"exit_code": self.exit_code, "status": system_status_to_dict(self.status)}


@dataclass(frozen=True)
class ClientDiagnosis:
    """Everything ``diagnose`` learned about one client."""

    client: TargetClient
    health: ClientHealth
    analysis: LogAnalysisResult
    isolations: dict[str, IsolationReport] = field(default_factory=dict)
    suggestions: dict[str, str] = field(default_factory=dict)

    @property
    def errors(self) -> list[ClassifiedError]:
        return self.health.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "client": client_to_dict(self.client),
            "health": client_health_to_dict(self.health),
            "warnings": list(self.analysis.warnings),
            "log_files": list(self.analysis.log_files),
            "isolations": {
                name: isolation_report_to_dict(r) for name, r in self.isolations.items()
            },
            "suggestions": dict(self.suggestions),
        }


@dataclass(frozen=True)
class DiagnosisResult:
    detection: DetectionResult
    clients: tuple[ClientDiagnosis, ...] = ()

    @property
    def errors(self) -> list[ClassifiedError]:
        return [e for c in self.clients for e in c.errors]

    @property
    def exit_code(self) -> int:
        return 1 if self.errors else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "exit_code": self.exit_code,
            "detection": detection_result_to_dict(self.detection),
            "clients": [c.to_dict() for c in self.clients],
            "errors": [classified_error_to_dict(e) for e in self.errors],
        }


@dataclass(frozen=True)
class RepairResult:
    """Reports per repaired client plus clients that could not be repaired."""

    reports: tuple[RepairReport, ...] = ()
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def exit_code(self) -> int:
        if self.failures:
            return 1
        return max((exit_code(r) for r in self.reports), default=0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "exit_code": self.exit_code,
            "reports": [repair_report_to_dict(r) for r in self.reports],
            "failures": dict(self.failures),
        }


# ===================================================================== #
#  Engine                                                                #
# ===================================================================== #


class DoctorEngine:
    """Facade over every diagnostic and repair service.

    Use :meth:`create_default` for a fully wired engine; the constructor
    takes every collaborator explicitly so tests can substitute fakes.
    """

    def __init__(
        self,
        config: DoctorConfig,
        inventory: ClientInventory,
        classifier: LogClassifier,
        evaluator: HealthEvaluator,
        isolator: RootCauseIsolator,
        planner: RepairPlanner,
        backups: BackupStore,
        executor: RepairExecutor,
        monitor: MonitorLoop,
        history: RepairHistory,
        event_bus: EventBus,
        config_store: ConfigStore | None = None,
    ) -> None:
        self.config = config
        self.inventory = inventory
        self.classifier = classifier
        self.evaluator = evaluator
        self.isolator = isolator
        self.planner = planner
        self.backups = backups
        self.executor = executor
        self.monitor = monitor
        self.history = history
        self.event_bus = event_bus
        self.events = EventStore(max_size=_EVENT_HISTORY)
        event_bus.subscribe_all(self.events.append)
        self.config_store = config_store or ConfigStore()

    @classmethod
    def create_default(
        cls,
        config: DoctorConfig | None = None,
        advisor: BaseRepairAdvisor | None = None,
        model: Any | None = None,
        process_table: ProcessTable | None = None,
        verifier: BaseVerifier | None = None,
        event_bus: EventBus | None = None,
        **inventory_kwargs: Any,
    ) -> DoctorEngine:
        """Build an engine from *config*.

        An advisor is consulted only when one is passed, or when *model* is
        passed and ``config.advisor.enabled`` is set.
        """
        config = config or DoctorConfig()
        config.validate()
        bus = event_bus if event_bus is not None else EventBus()
        locks = KeyLockRegistry()
        store = ConfigStore()

        inventory = ClientInventory(
            config=config.inventory,
            process_table=process_table,
            config_store=store,
            **inventory_kwargs,
        )
        classifier = LogClassifier(platform=inventory.platform, home=inventory.home)
        evaluator = HealthEvaluator()
        isolator = RootCauseIsolator(probe_timeout=config.isolation.probe_timeout_seconds)

        if advisor is None and model is not None and config.advisor.enabled:
            advisor = LLMRepairAdvisor(
                model,
                max_log_chars=config.advisor.max_log_chars,
                min_confidence=config.advisor.min_confidence,
                max_suggestions=config.advisor.max_suggestions,
            )
        planner = RepairPlanner(advisor=advisor)

        backups = BackupStore(config.backup_dir, config.backup, locks=locks, event_bus=bus)
        history = RepairHistory(config.history_path)
        verifier = verifier or ClientVerifier(inventory, classifier, evaluator, isolator)
        executor = RepairExecutor(backups, store, verifier, history=history, event_bus=bus)
        monitor = MonitorLoop(
            inventory,
            classifier,
            evaluator,
            config.monitor,
            event_bus=bus,
            watermark=history.log_watermark,
        )

        return cls(
            config=config,
            inventory=inventory,
            classifier=classifier,
            evaluator=evaluator,
            isolator=isolator,
            planner=planner,
            backups=backups,
            executor=executor,
            monitor=monitor,
            history=history,
            event_bus=bus,
            config_store=store,
        )

    # -- detection ----------------------------------------------------------

    def detect(self) -> DetectionResult:
        """Fresh detection pass; also replaces the monitor's cached inventory."""
        result = self.inventory.detect()
        self.monitor.set_clients(list(result.clients))
        return result

    def clients(self, client_kind: ClientKind | None = None) -> list[TargetClient]:
        clients = self.monitor.clients or list(self.detect().clients)
        if client_kind is not None:
            clients = [c for c in clients if c.kind is client_kind]
        return clients

    # -- verbs --------------------------------------------------------------

    def status(self) -> StatusResult:
        return StatusResult(status=self.monitor.check_now())

    def diagnose(self, client_kind: ClientKind | None = None) -> DiagnosisResult:
        """Classify logs, isolate helpers without evidence, evaluate health."""
        detection = self.detect()
        diagnoses = [
            self.diagnose_client(client)
            for client in detection.clients
            if client_kind is None or client.kind is client_kind
        ]
        return DiagnosisResult(detection=detection, clients=tuple(diagnoses))

    def diagnose_client(self, client: TargetClient) -> ClientDiagnosis:
        running = self.inventory.is_client_running(client)
        analysis = self.classifier.analyze_client(client, self.history.log_watermark(client))
        errors = list(analysis.errors)

        # Active probing for helpers the logs say nothing about.
        isolations: dict[str, IsolationReport] = {}
        explained = {e.helper_name for e in errors if e.helper_name}
        for name in client.helper_names:
            if name in explained:
                continue
            report = self.isolator.isolate_helper(client, name)
            isolations[name] = report
            if report.result.error_kind is not ErrorKind.UNKNOWN:
                errors.append(report.result.to_error(helper=client.helper(name), client=client))

        health = self.evaluator.evaluate(client, running, errors)
        return ClientDiagnosis(
            client=client,
            health=health,
            analysis=analysis,
            isolations=isolations,
            suggestions=suggest_fixes(errors),
        )

    def repair(
        self,
        dry_run: bool = False,
        client_kind: ClientKind | None = None,
        auto_confirm: bool = False,
        use_advisor: bool = True,
        wait: bool = False,
    ) -> RepairResult:
        """Diagnose, plan and repair every (or one kind of) detected client."""
        reports: list[RepairReport] = []
        failures: dict[str, str] = {}
        for diagnosis in self.diagnose(client_kind).clients:
            client = diagnosis.client
            errors = diagnosis.errors
            if use_advisor and self.planner.advisor is not None and errors:
                log_text = self.classifier.read_client_logs(
                    client, max_chars=self.config.advisor.max_log_chars
                )
                plan = self.planner.plan_with_advisor(client, errors, log_text)
            else:
                plan = self.planner.plan(client, errors)
            try:
                report = self.executor.execute(
                    plan,
                    dry_run=dry_run,
                    auto_confirm=auto_confirm,
                    wait=wait,
                    health_before=diagnosis.health.health,
                )
            except DoctorError as exc:
                logger.warning("Repair of %s did not run: %s", client.display_name, exc)
                failures[client.display_name] = str(exc)
                continue
            reports.append(report)
        return RepairResult(reports=tuple(reports), failures=failures)

    def isolate(self, client: TargetClient, helper_name: str) -> IsolationReport:
        return self.isolator.isolate_helper(client, helper_name)

    # -- self test ----------------------------------------------------------

    def self_test(self) -> SelfTestResult:
        """Check that the engine's own moving parts work on this machine."""
        checks = [
            self._check("backup_dir_writable", "Backup directory is writable", self._backup_dir_writable),
            self._check("classifier_rules", "Classifier recognizes known failures", self._classifier_sane),
            self._check("decision_tree", "Isolation tree is well-formed", self._tree_well_formed),
            self._check("config_store", "Config store round-trips a helper map", self._config_round_trip),
        ]
        return SelfTestResult(results=tuple(checks))

    @staticmethod
    def _check(name: str, description: str, fn: Any) -> CheckResult:
        try:
            problem = fn()
        except Exception as exc:
            logger.exception("Self-test check %s raised", name)
            return CheckResult(name=name, passed=False, description=description, error=str(exc))
        return CheckResult(name=name, passed=not problem, description=description, error=problem or "")

    def _backup_dir_writable(self) -> str:
        directory = self.backups.directory
        directory.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=directory, prefix=".selftest-"):
            pass
        return ""

    def _classifier_sane(self) -> str:
        samples = {
            "Error: spawn node ENOENT": ErrorKind.PATH,
            'EACCES: permission denied, open "/etc/x.json"': ErrorKind.PERMISSION,
            "connect ECONNREFUSED 127.0.0.1:3000": ErrorKind.NETWORK,
        }
        for line, kind in samples.items():
            error = self.classifier.classify_line(line)
            if error is None or error.kind is not kind:
                return f"{line!r} was not classified as {kind.value}"
        return ""

    def _tree_well_formed(self) -> str:
        tree = self.isolator.tree
        if not isinstance(tree, ProbeNode):
            return "root is not a probe"
        if leaf_count(tree) < depth(tree) + 1:
            return "tree has fewer leaves than a chain of its depth"
        return ""

    def _config_round_trip(self) -> str:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            self.config_store.create_template(path)
            helpers = self.config_store.read_helpers(path)
            if helpers:
                return "template unexpectedly contains helpers"
        return ""

    # -- health shortcuts ---------------------------------------------------

    @property
    def last_status(self) -> SystemStatus | None:
        return self.monitor.last_status

    def overall_health(self) -> HealthLevel:
        status = self.monitor.last_status or self.monitor.check_now()
        return status.overall
