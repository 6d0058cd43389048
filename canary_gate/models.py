"""Data models for analysis specs, resolved legs, wire payloads and measurements."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

TEMPLATE_LOG = "LOG"
TEMPLATE_METRIC = "METRIC"

CD_INTEGRATION_ARGO_ROLLOUTS = "argorollouts"
CD_INTEGRATION_ARGO_CD = "argocd"

PHASE_RUNNING = "Running"
PHASE_SUCCESSFUL = "Successful"
PHASE_INCONCLUSIVE = "Inconclusive"
PHASE_FAILED = "Failed"
PHASE_ERROR = "Error"

TERMINAL_PHASES = (PHASE_SUCCESSFUL, PHASE_INCONCLUSIVE, PHASE_FAILED, PHASE_ERROR)

STATUS_RUNNING = "RUNNING"
STATUS_CANCELLED = "CANCELLED"
STATUS_COMPLETED = "COMPLETED"

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


@dataclass
class ServiceEntry:
    service_name: str = ""
    log_template_name: str = ""
    log_template_version: str = ""
    log_scope_variables: str = ""
    baseline_log_scope: str = ""
    canary_log_scope: str = ""
    metric_template_name: str = ""
    metric_template_version: str = ""
    metric_scope_variables: str = ""
    baseline_metric_scope: str = ""
    canary_metric_scope: str = ""


@dataclass
class AnalysisSpec:
    pass_score: int
    marginal_score: int
    application: str = ""
    user: str = ""
    opsmx_isd_url: str = ""
    profile: str = ""
    baseline_start_time: str = ""  # RFC 3339, empty means "now"
    canary_start_time: str = ""
    lifetime_minutes: int = 0
    end_time: str = ""
    global_log_template: str = ""
    global_metric_template: str = ""
    services: List[ServiceEntry] = field(default_factory=list)
    interval_time: int = 0
    look_back_type: str = ""
    delay: int = 0
    gitops: bool = False


@dataclass
class ResolvedLeg:
    kind: str  # TEMPLATE_LOG or TEMPLATE_METRIC
    service_name: str
    service_gate: str
    template: str
    scope_variables: str
    baseline_scope: str
    canary_scope: str
    template_version: str = ""
    template_sha1: str = ""


@dataclass
class RunProfile:
    user: str
    opsmx_isd_url: str
    source_name: str
    cd_integration: str
    agent_name: str = ""


@dataclass
class RunTiming:
    canary_start_ms: int
    baseline_start_ms: int
    lifetime_minutes: int
    end_ms: Optional[int] = None


# -- wire payload ---------------------------------------------------------------


@dataclass
class ScopeRecord:
    service_gate: str
    scope_variables: str
    scope_value: str
    template: str
    template_sha1: str = ""
    template_version: str = ""

    def to_dict(self) -> Dict[str, str]:
        # The scope variable string itself is the key the remote API expects.
        record = {
            self.scope_variables: self.scope_value,
            "serviceGate": self.service_gate,
            "template": self.template,
        }
        if self.template_sha1:
            record["templateSha1"] = self.template_sha1
        if self.template_version:
            record["templateVersion"] = self.template_version
        return record


@dataclass
class DeploymentSide:
    log: Dict[str, ScopeRecord] = field(default_factory=dict)
    metric: Dict[str, ScopeRecord] = field(default_factory=dict)

    def to_dict(self) -> dict:
        out = {}
        if self.log:
            out["log"] = {name: rec.to_dict() for name, rec in self.log.items()}
        if self.metric:
            out["metric"] = {name: rec.to_dict() for name, rec in self.metric.items()}
        return out


@dataclass
class CanaryDeployment:
    canary_start_time_ms: str
    baseline_start_time_ms: str
    canary: DeploymentSide = field(default_factory=DeploymentSide)
    baseline: DeploymentSide = field(default_factory=DeploymentSide)

    def to_dict(self) -> dict:
        return {
            "canaryStartTimeMs": self.canary_start_time_ms,
            "baselineStartTimeMs": self.baseline_start_time_ms,
            "canary": self.canary.to_dict(),
            "baseline": self.baseline.to_dict(),
        }


@dataclass
class CanaryConfig:
    lifetime_minutes: str
    minimum_canary_result_score: str
    canary_result_score: str
    look_back_type: str = ""
    interval: str = ""
    delay: str = ""

    def to_dict(self) -> dict:
        out = {"lifetimeMinutes": self.lifetime_minutes}
        if self.look_back_type:
            out["lookBackType"] = self.look_back_type
        if self.interval:
            out["interval"] = self.interval
        if self.delay:
            out["delay"] = self.delay
        out["canaryHealthCheckHandler"] = {
            "minimumCanaryResultScore": self.minimum_canary_result_score,
        }
        out["canarySuccessCriteria"] = {"canaryResultScore": self.canary_result_score}
        return out


@dataclass
class SubmissionPayload:
    application: str
    source_name: str
    source_type: str
    canary_config: CanaryConfig
    canary_deployments: List[CanaryDeployment] = field(default_factory=list)
    agent_name: str = ""

    def to_dict(self) -> dict:
        out = {
            "application": self.application,
            "sourceName": self.source_name,
            "sourceType": self.source_type,
        }
        if self.agent_name:
            out["agentName"] = self.agent_name
        out["canaryConfig"] = self.canary_config.to_dict()
        out["canaryDeployments"] = [d.to_dict() for d in self.canary_deployments]
        return out


# -- remote job state -------------------------------------------------------------


@dataclass
class JobHandle:
    canary_id: str  # kept as text so large numeric ids survive untouched
    report_token: str = ""


@dataclass
class PollResult:
    status: str
    report_url: str = ""
    interval_no: Optional[str] = None
    overall_score: Optional[object] = None


@dataclass
class Measurement:
    phase: str = ""
    message: str = ""
    value: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    resume_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "message": self.message,
            "value": self.value,
            "metadata": dict(self.metadata),
            "startedAt": _format_ts(self.started_at),
            "finishedAt": _format_ts(self.finished_at),
            "resumeAt": _format_ts(self.resume_at),
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "Measurement":
        return cls(
            phase=raw.get("phase", ""),
            message=raw.get("message", ""),
            value=raw.get("value", ""),
            metadata={k: str(v) for k, v in (raw.get("metadata") or {}).items()},
            started_at=_parse_ts(raw.get("startedAt")),
            finished_at=_parse_ts(raw.get("finishedAt")),
            resume_at=_parse_ts(raw.get("resumeAt")),
        )


def _format_ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
