"""Canonicalize author-written metric templates into the remote JSON form."""

import logging
from typing import Any, Dict, List, Mapping, Sequence

import yaml

from canary_gate.errors import NoGroupsDefined, TemplateSyncError

logger = logging.getLogger(__name__)

# Template-wide values that act as defaults for every metric definition.
PROPAGATED_FIELDS = ("metricWeight", "nanStrategy", "criticality")

# (yaml key, json key) for each metric definition, in output order.
_METRIC_FIELDS = (
    ("metricWeight", "metricWeight"),
    ("nanStrategy", "nanStrategy"),
    ("accountName", "accountName"),
    ("riskDirection", "riskDirection"),
    ("customThresholdHigherPercentage", "customThresholdHigher"),
    ("name", "name"),
    ("criticality", "criticality"),
    ("customThresholdLowerPercentage", "customThresholdLower"),
    ("metricType", "metricType"),
)

_NUMBER_FIELDS = ("metricWeight",)
_INT_FIELDS = ("customThresholdHigherPercentage", "customThresholdLowerPercentage")
_TEXT_FIELDS = ("nanStrategy", "accountName", "riskDirection", "name", "criticality", "metricType")
_BOOL_FIELDS = ("watchlist",)


def propagate_defaults(
    global_defaults: Mapping[str, Any],
    per_metric_overrides: Sequence[Mapping[str, Any]],
) -> List[Dict[str, Any]]:
    """Fill each metric's unset fields from the template-wide defaults.

    A metric's own value always wins. Unset globals (None or empty) are
    ignored. The inputs are left untouched; new dicts are returned.
    """
    resolved = []
    for metric in per_metric_overrides:
        merged = dict(metric)
        for key, value in global_defaults.items():
            if _is_unset(value):
                continue
            if _is_unset(merged.get(key)):
                merged[key] = value
        resolved.append(merged)
    return resolved


def process_yaml_metrics(raw: str, template_name: str, scope_variables: str) -> Dict[str, Any]:
    """Turn a YAML metric template into its canonical JSON-ready dict.

    ``templateName`` and ``filterKey`` are always overwritten with the
    referenced template name and the leg's scope variables.

    Raises:
        TemplateSyncError: If the YAML is unparseable or structurally invalid.
        NoGroupsDefined: If the template defines no metric groups.
    """
    prefix = f"gitops '{template_name}' template config map validation error"
    try:
        doc = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise TemplateSyncError(f"{prefix}: {exc}") from exc
    if not isinstance(doc, dict):
        raise TemplateSyncError(f"{prefix}: metric template must be a mapping")

    existing_filter = doc.get("filterKey") or ""
    if existing_filter and existing_filter != scope_variables:
        logger.warning(
            "the filterKey field has been defined in the metric template %s, "
            "it will be overriden by %s", template_name, scope_variables,
        )
    existing_name = doc.get("templateName") or ""
    if existing_name and existing_name != template_name:
        logger.warning(
            "the templateName field has been defined in the metric template %s, "
            "it will be overriden", template_name,
        )

    _check_field_types(doc, "metric template", prefix)
    global_defaults = {key: doc.get(key) for key in PROPAGATED_FIELDS}
    for key, value in global_defaults.items():
        if _is_unset(value):
            logger.info(
                "the %s field is not defined at the global level for metric template %s, "
                "values at the metric level will be used", key, template_name,
            )

    setup = doc.get("metricTemplateSetup") or {}
    if not isinstance(setup, dict):
        raise TemplateSyncError(f"{prefix}: metricTemplateSetup must be a mapping")
    groups = setup.get("groups") or []
    if not isinstance(groups, list):
        raise TemplateSyncError(f"{prefix}: metricTemplateSetup.groups must be a list")
    if not groups:
        raise NoGroupsDefined(
            f"{prefix}: metric template {template_name} does not have any members "
            "defined for the groups field"
        )

    canonical_groups = []
    for i, group in enumerate(groups):
        if not isinstance(group, dict):
            raise TemplateSyncError(f"{prefix}: groups[{i}] must be a mapping")
        metrics = group.get("metrics") or []
        if not isinstance(metrics, list) or not all(isinstance(m, dict) for m in metrics):
            raise TemplateSyncError(f"{prefix}: groups[{i}].metrics must be a list of mappings")
        for j, metric in enumerate(metrics):
            _check_field_types(metric, f"groups[{i}].metrics[{j}]", prefix)
        resolved = propagate_defaults(global_defaults, metrics)
        entry: Dict[str, Any] = {"metrics": [_canonical_metric(m) for m in resolved]}
        if group.get("group"):
            entry["group"] = group["group"]
        canonical_groups.append(entry)

    canonical: Dict[str, Any] = {}
    if scope_variables:
        canonical["filterKey"] = scope_variables
    if doc.get("accountName"):
        canonical["accountName"] = doc["accountName"]
    canonical["data"] = {"isNormalize": False, "groups": canonical_groups}
    canonical["templateName"] = template_name
    if doc.get("monitoringProvider"):
        canonical["monitoringProvider"] = doc["monitoringProvider"]

    logger.info("processed metric template %s with %d groups", template_name, len(canonical_groups))
    return canonical


def _canonical_metric(metric: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for yaml_key, json_key in _METRIC_FIELDS:
        value = metric.get(yaml_key)
        if _is_unset(value):
            continue
        if yaml_key.startswith("customThreshold") and value == 0:
            continue
        out[json_key] = value
    out["watchlist"] = bool(metric.get("watchlist", False))
    return out


def _check_field_types(fields: Mapping[str, Any], where: str, prefix: str) -> None:
    """Reject values whose YAML type cannot be sent as the expected JSON type."""
    for key, value in fields.items():
        if value is None:
            continue
        if key in _NUMBER_FIELDS:
            ok = isinstance(value, (int, float)) and not isinstance(value, bool)
            expected = "a number"
        elif key in _INT_FIELDS:
            ok = isinstance(value, int) and not isinstance(value, bool)
            expected = "an integer"
        elif key in _TEXT_FIELDS:
            ok = isinstance(value, str)
            expected = "a string"
        elif key in _BOOL_FIELDS:
            ok = isinstance(value, bool)
            expected = "a boolean"
        else:
            continue
        if not ok:
            raise TemplateSyncError(f"{prefix}: {where} field {key} must be {expected}, got {value!r}")


def _is_unset(value: Any) -> bool:
    return value is None or value == ""
