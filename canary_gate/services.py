"""Validate per-service log/metric wiring and resolve it into analysis legs."""

import logging
from typing import List, Optional, Set

from canary_gate.errors import (
    DuplicateServiceName,
    MissingBaselineOrCanary,
    MissingScopePair,
    MissingTemplate,
    NoLegsDefined,
    ScopeCardinalityMismatch,
)
from canary_gate.models import (
    TEMPLATE_LOG,
    TEMPLATE_METRIC,
    AnalysisSpec,
    ResolvedLeg,
    ServiceEntry,
)

logger = logging.getLogger(__name__)

_PREFIX = "analysisTemplate validation error: "


def validate_services(spec: AnalysisSpec) -> List[ResolvedLeg]:
    """Validate every service entry and return its active legs in order.

    Each service contributes its log leg (if any) followed by its metric leg
    (if any). Gate ids follow the 1-based position of the service in the
    spec, as do derived service names.

    Raises:
        ServiceValidationError: On the first invalid service entry, or when
            no service declares any leg at all.
    """
    legs: List[ResolvedLeg] = []
    seen: Set[str] = set()

    for i, item in enumerate(spec.services):
        service_name = item.service_name or f"service{i + 1}"
        if service_name in seen:
            raise DuplicateServiceName(
                _PREFIX + f"serviceName '{service_name}' mentioned exists more than once"
            )
        seen.add(service_name)
        gate = f"gate{i + 1}"

        log_leg = _resolve_leg(
            kind=TEMPLATE_LOG,
            service_name=service_name,
            gate=gate,
            scope_variables=item.log_scope_variables,
            baseline=item.baseline_log_scope,
            canary=item.canary_log_scope,
            template=item.log_template_name,
            version=item.log_template_version,
            global_template=spec.global_log_template,
        )
        if log_leg is not None:
            legs.append(log_leg)

        metric_leg = _resolve_leg(
            kind=TEMPLATE_METRIC,
            service_name=service_name,
            gate=gate,
            scope_variables=item.metric_scope_variables,
            baseline=item.baseline_metric_scope,
            canary=item.canary_metric_scope,
            template=item.metric_template_name,
            version=item.metric_template_version,
            global_template=spec.global_metric_template,
        )
        if metric_leg is not None:
            legs.append(metric_leg)

    if not legs:
        raise NoLegsDefined(
            _PREFIX + "at least one of log or metric context must be provided"
        )
    logger.debug("resolved %d analysis legs across %d services", len(legs), len(spec.services))
    return legs


def _resolve_leg(
    kind: str,
    service_name: str,
    gate: str,
    scope_variables: str,
    baseline: str,
    canary: str,
    template: str,
    version: str,
    global_template: str,
) -> Optional[ResolvedLeg]:
    label = kind.lower()
    if not scope_variables and (baseline or canary):
        raise MissingScopePair(
            _PREFIX + f"missing {label} Scope placeholder for the provided "
            f"baseline/canary of service '{service_name}'"
        )
    if not scope_variables:
        return None

    if not baseline or not canary:
        raise MissingBaselineOrCanary(
            _PREFIX + f"missing canary/baseline for {label} analysis of service '{service_name}'"
        )

    expected = len(scope_variables.split(","))
    if len(baseline.split(",")) != expected or len(canary.split(",")) != expected:
        raise ScopeCardinalityMismatch(
            _PREFIX + f"mismatch in number of {label} scope variables and "
            f"baseline/canary {label} scope of service '{service_name}'"
        )

    if not template and not global_template:
        raise MissingTemplate(
            _PREFIX + f"provide either a service specific {label} template or "
            f"global {label} template for service '{service_name}'"
        )

    return ResolvedLeg(
        kind=kind,
        service_name=service_name,
        service_gate=gate,
        template=template or global_template,
        scope_variables=scope_variables,
        baseline_scope=baseline,
        canary_scope=canary,
        template_version=version,
    )


def service_entry_from_dict(raw: dict) -> ServiceEntry:
    """Build a ServiceEntry from its camelCase document form."""
    return ServiceEntry(
        service_name=_text(raw, "serviceName"),
        log_template_name=_text(raw, "logTemplateName"),
        log_template_version=_text(raw, "logTemplateVersion"),
        log_scope_variables=_text(raw, "logScopeVariables"),
        baseline_log_scope=_text(raw, "baselineLogScope"),
        canary_log_scope=_text(raw, "canaryLogScope"),
        metric_template_name=_text(raw, "metricTemplateName"),
        metric_template_version=_text(raw, "metricTemplateVersion"),
        metric_scope_variables=_text(raw, "metricScopeVariables"),
        baseline_metric_scope=_text(raw, "baselineMetricScope"),
        canary_metric_scope=_text(raw, "canaryMetricScope"),
    )


def _text(raw: dict, key: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    return str(value)
