"""Load analysis specs (YAML or JSON) and run their basic consistency checks."""

import json
import os
from datetime import datetime, timezone
from typing import List

import yaml

from canary_gate.errors import SpecValidationError
from canary_gate.models import TIMESTAMP_FORMAT, AnalysisSpec, ServiceEntry
from canary_gate.services import service_entry_from_dict
from canary_gate.settings import PLUGIN_NAME

_PREFIX = "analysisTemplate validation error: "

DOCUMENT_EXTENSIONS = (".yaml", ".yml", ".json")


def read_document(path: str):
    """Parse a file as JSON when it ends in ``.json``, otherwise as YAML.

    Parse and I/O errors propagate to the caller.
    """
    with open(path, "r") as f:
        if path.lower().endswith(".json"):
            return json.load(f)
        return yaml.safe_load(f)


def load_spec(path: str) -> AnalysisSpec:
    """Load an analysis spec from a YAML or JSON file.

    The file may hold the plugin configuration directly, or a whole
    controller metric definition (``provider.plugin.<plugin name>``), in
    which case the plugin block is extracted.

    Args:
        path: Path to the analysis spec file.

    Returns:
        A parsed AnalysisSpec. Call ``basic_checks`` before using it.

    Raises:
        SpecValidationError: If the file is missing, unreadable, or invalid.
    """
    if not os.path.isfile(path):
        raise SpecValidationError(f"spec file not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    if ext not in DOCUMENT_EXTENSIONS:
        raise SpecValidationError(
            f"unsupported file extension: {ext} (expected .yaml, .yml, or .json)"
        )
    try:
        raw = read_document(path)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as exc:
        raise SpecValidationError(f"failed to parse {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise SpecValidationError("spec must be a mapping/object at the top level")

    return spec_from_dict(_unwrap_plugin_config(raw))


def spec_from_dict(raw: dict) -> AnalysisSpec:
    """Construct an AnalysisSpec from its camelCase document form."""
    errors: List[str] = []

    pass_score = _int_field(raw, "passScore", errors, required=True)
    marginal_score = _int_field(raw, "marginalScore", errors, required=True)
    lifetime = _int_field(raw, "lifetimeMinutes", errors)
    interval = _int_field(raw, "intervalTime", errors)
    delay = _int_field(raw, "delay", errors)

    gitops = raw.get("gitops", False)
    if not isinstance(gitops, bool):
        errors.append("'gitops' must be a boolean")
        gitops = False

    services = _parse_services(raw.get("serviceList", []), errors)

    if errors:
        raise SpecValidationError(
            "analysis spec validation failed:\n  - " + "\n  - ".join(errors)
        )

    return AnalysisSpec(
        pass_score=pass_score,
        marginal_score=marginal_score,
        application=_str_field(raw, "application"),
        user=_str_field(raw, "user"),
        opsmx_isd_url=_str_field(raw, "opsmxIsdUrl"),
        profile=_str_field(raw, "profile"),
        baseline_start_time=_str_field(raw, "baselineStartTime"),
        canary_start_time=_str_field(raw, "canaryStartTime"),
        lifetime_minutes=lifetime,
        end_time=_str_field(raw, "endTime"),
        global_log_template=_str_field(raw, "globalLogTemplate"),
        global_metric_template=_str_field(raw, "globalMetricTemplate"),
        services=services,
        interval_time=interval,
        look_back_type=_str_field(raw, "lookBackType"),
        delay=delay,
        gitops=gitops,
    )


def basic_checks(spec: AnalysisSpec) -> None:
    """Check score ordering, duration and interval settings.

    Raises:
        SpecValidationError: On the first inconsistency found.
    """
    if spec.pass_score <= spec.marginal_score:
        raise SpecValidationError(_PREFIX + "pass score cannot be less than marginal score")
    if spec.lifetime_minutes == 0 and not spec.end_time:
        raise SpecValidationError(_PREFIX + "provide either lifetimeMinutes or end time")
    if spec.canary_start_time != spec.baseline_start_time and spec.lifetime_minutes == 0:
        raise SpecValidationError(
            _PREFIX + "both canaryStartTime and baselineStartTime should be kept same "
            "while using endTime argument for analysis"
        )
    if 0 < spec.lifetime_minutes < 3 or spec.lifetime_minutes < 0:
        raise SpecValidationError(_PREFIX + "lifetimeMinutes cannot be less than 3 minutes")
    if 0 < spec.interval_time < 3 or spec.interval_time < 0:
        raise SpecValidationError(_PREFIX + "intervalTime cannot be less than 3 minutes")
    if spec.look_back_type and spec.interval_time == 0:
        raise SpecValidationError(
            _PREFIX + "intervalTime should be given along with lookBackType "
            "to perform interval analysis"
        )


def _unwrap_plugin_config(raw: dict) -> dict:
    provider = raw.get("provider")
    if not isinstance(provider, dict):
        return raw
    plugin = provider.get("plugin")
    if not isinstance(plugin, dict) or PLUGIN_NAME not in plugin:
        raise SpecValidationError(
            f"metric provider does not carry a '{PLUGIN_NAME}' plugin configuration"
        )
    inner = plugin[PLUGIN_NAME]
    if not isinstance(inner, dict):
        raise SpecValidationError("plugin configuration must be a mapping")
    return inner


def _int_field(raw: dict, key: str, errors: List[str], required: bool = False) -> int:
    value = raw.get(key)
    if value is None:
        if required:
            errors.append(f"'{key}' is required and must be an integer")
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        errors.append(f"'{key}' must be an integer")
        return 0
    return value


def _str_field(raw: dict, key: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    # YAML turns unquoted RFC 3339 timestamps into datetime objects.
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
    return str(value)


def _parse_services(raw, errors: List[str]) -> List[ServiceEntry]:
    if not isinstance(raw, list):
        errors.append("'serviceList' must be a list")
        return []
    services = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            errors.append(f"serviceList[{i}] must be a mapping")
            continue
        services.append(service_entry_from_dict(item))
    return services
