"""Normalize run timing and assemble the submission payload."""

import logging
import time
from datetime import datetime
from typing import List, Optional

from canary_gate.errors import InvalidTimestamp, StartAfterEnd
from canary_gate.models import (
    TEMPLATE_LOG,
    AnalysisSpec,
    CanaryConfig,
    CanaryDeployment,
    ResolvedLeg,
    RunProfile,
    RunTiming,
    ScopeRecord,
    SubmissionPayload,
)
from canary_gate.verdict import round_half_up

logger = logging.getLogger(__name__)

_PREFIX = "analysisTemplate validation error: "


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_timestamp_ms(value: str, field_name: str) -> int:
    """Parse an RFC 3339 timestamp into epoch milliseconds."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise InvalidTimestamp(_PREFIX + f"error in parsing {field_name}: {exc}") from exc
    if parsed.tzinfo is None:
        raise InvalidTimestamp(
            _PREFIX + f"error in parsing {field_name}: {value!r} carries no timezone offset"
        )
    return int(parsed.timestamp() * 1000)


def resolve_timing(spec: AnalysisSpec, current_ms: Optional[int] = None) -> RunTiming:
    """Convert the analysis start/end times to epoch ms and settle the lifetime.

    Unset start times default to ``current_ms``. With no explicit lifetime,
    it is derived from endTime - canaryStartTime in whole minutes.

    Raises:
        InvalidTimestamp: If a timestamp cannot be parsed.
        StartAfterEnd: If the canary start lies after endTime.
    """
    if current_ms is None:
        current_ms = now_ms()

    canary_start = current_ms
    if spec.canary_start_time:
        canary_start = parse_timestamp_ms(spec.canary_start_time, "canaryStartTime")
    baseline_start = current_ms
    if spec.baseline_start_time:
        baseline_start = parse_timestamp_ms(spec.baseline_start_time, "baselineStartTime")
    end = None
    if spec.end_time:
        end = parse_timestamp_ms(spec.end_time, "endTime")

    lifetime = spec.lifetime_minutes
    if lifetime == 0:
        if end is None:
            raise InvalidTimestamp(_PREFIX + "error in parsing endTime: endTime is not set")
        if canary_start > end:
            raise StartAfterEnd(_PREFIX + "canaryStartTime cannot be greater than endTime")
        lifetime = round_half_up((end - canary_start) / 60000.0)

    return RunTiming(
        canary_start_ms=canary_start,
        baseline_start_ms=baseline_start,
        lifetime_minutes=lifetime,
        end_ms=end,
    )


def build_payload(
    spec: AnalysisSpec,
    profile: RunProfile,
    legs: List[ResolvedLeg],
    timing: RunTiming,
) -> SubmissionPayload:
    """Assemble the registerCanary payload for one deployment.

    Every leg lands in both the baseline and canary tables of the
    deployment, keyed by service name under ``log`` or ``metric``.
    """
    config = CanaryConfig(
        lifetime_minutes=str(timing.lifetime_minutes),
        minimum_canary_result_score=str(spec.marginal_score),
        canary_result_score=str(spec.pass_score),
        look_back_type=spec.look_back_type,
        interval=str(spec.interval_time) if spec.interval_time else "",
        delay=str(spec.delay) if spec.delay else "",
    )
    deployment = CanaryDeployment(
        canary_start_time_ms=str(timing.canary_start_ms),
        baseline_start_time_ms=str(timing.baseline_start_ms),
    )
    for leg in legs:
        if leg.kind == TEMPLATE_LOG:
            canary_table, baseline_table = deployment.canary.log, deployment.baseline.log
        else:
            canary_table, baseline_table = deployment.canary.metric, deployment.baseline.metric
        canary_table[leg.service_name] = _scope_record(leg, leg.canary_scope)
        baseline_table[leg.service_name] = _scope_record(leg, leg.baseline_scope)

    payload = SubmissionPayload(
        application=spec.application,
        source_name=profile.source_name,
        source_type=profile.cd_integration,
        agent_name=profile.agent_name,
        canary_config=config,
        canary_deployments=[deployment],
    )
    logger.debug(
        "built payload for %s: %d legs, lifetime %s minutes",
        spec.application, len(legs), config.lifetime_minutes,
    )
    return payload


def _scope_record(leg: ResolvedLeg, value: str) -> ScopeRecord:
    return ScopeRecord(
        service_gate=leg.service_gate,
        scope_variables=leg.scope_variables,
        scope_value=value,
        template=leg.template,
        template_sha1=leg.template_sha1,
        template_version=leg.template_version,
    )
