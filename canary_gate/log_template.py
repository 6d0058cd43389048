"""Canonicalize author-written log templates into the remote JSON form."""

import logging
from typing import Any, Dict, List, Sequence, Tuple

import yaml

from canary_gate.errors import TemplateSyncError

logger = logging.getLogger(__name__)

DEFAULT_ERROR_TOPICS_VERSION = 1

# (error string, topic) pairs merged into every log template unless disabled.
DEFAULT_ERROR_TOPICS: Tuple[Tuple[str, str], ...] = (
    ("OnOutOfMemoryError", "critical"),
    ("StackOverflowError", "critical"),
    ("ClassNotFoundException", "critical"),
    ("FileNotFoundException", "critical"),
    ("ArrayIndexOutOfBounds", "critical"),
    ("NullPointerException", "critical"),
    ("StringIndexOutOfBoundsException", "critical"),
    ("FATAL", "critical"),
    ("SEVERE", "critical"),
    ("NoClassDefFoundError", "error"),
    ("NoSuchMethodFoundError", "error"),
    ("NumberFormatException", "error"),
    ("IllegalArgumentException", "error"),
    ("ParseException", "error"),
    ("SQLException", "error"),
    ("ArithmeticException", "error"),
    ("status=404", "error"),
    ("status=500", "error"),
    ("EXCEPTION", "error"),
    ("ERROR", "error"),
    ("WARN", "warn"),
)

TOPIC_TYPE_DEFAULT = "default"
TOPIC_TYPE_CUSTOM = "custom"

# Keys copied through only when the author set them.
_OPTIONAL_KEYS = (
    "contextualCluster",
    "contextualWindowSize",
    "infoScoring",
    "regExFilter",
    "regExResponseKey",
    "regularExpression",
    "autoBaseline",
    "sensitivity",
    "streamId",
)


def merge_error_topics(
    user_topics: Sequence[Dict[str, str]],
    default_topics: Sequence[Tuple[str, str]],
    disable_defaults: bool = False,
) -> List[Dict[str, str]]:
    """Tag user topics against the default table and append uncovered defaults.

    A user topic whose error string appears in the defaults is typed
    ``default`` if its topic agrees with the table, else ``custom``. Other
    user topics keep an empty type. Defaults the user did not mention are
    appended unless ``disable_defaults`` is set.
    """
    defaults = dict(default_topics)
    merged = []
    covered = set()
    for item in user_topics:
        error_string = item.get("string", "")
        topic = item.get("topic", "")
        covered.add(error_string)
        topic_type = ""
        if error_string in defaults:
            topic_type = TOPIC_TYPE_DEFAULT if topic == defaults[error_string] else TOPIC_TYPE_CUSTOM
        merged.append({"string": error_string, "topic": topic, "type": topic_type})

    if not disable_defaults:
        for error_string, topic in default_topics:
            if error_string not in covered:
                merged.append({"string": error_string, "topic": topic, "type": TOPIC_TYPE_DEFAULT})
    return merged


def process_yaml_logs(
    raw: str,
    template_name: str,
    scope_variables: str,
    default_topics: Sequence[Tuple[str, str]] = DEFAULT_ERROR_TOPICS,
) -> Dict[str, Any]:
    """Turn a YAML log template into its canonical JSON-ready dict.

    Raises:
        TemplateSyncError: If the YAML is unparseable or structurally invalid.
    """
    prefix = f"gitops '{template_name}' template config map validation error"
    try:
        doc = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise TemplateSyncError(f"{prefix}: {exc}") from exc
    if not isinstance(doc, dict):
        raise TemplateSyncError(f"{prefix}: log template must be a mapping")

    for key, forced in (("templateName", template_name), ("filterKey", scope_variables)):
        existing = doc.get(key) or ""
        if existing and existing != forced:
            logger.warning(
                "the %s field has been defined in the log template %s, it will be overriden by %s",
                key, template_name, forced,
            )

    tags = [
        {"string": _text(t.get("errorString")), "tag": _text(t.get("tag"))}
        for t in _mapping_list(doc.get("tags"), "tags", prefix)
    ]
    user_topics = [
        {"string": _text(t.get("errorString")), "topic": _text(t.get("topic"))}
        for t in _mapping_list(doc.get("errorTopics"), "errorTopics", prefix)
    ]
    disable_defaults = doc.get("disableDefaultErrorTopics")
    if disable_defaults is None:
        disable_defaults = False
    elif not isinstance(disable_defaults, bool):
        raise TemplateSyncError(
            f"{prefix}: disableDefaultErrorTopics must be a boolean, got {disable_defaults!r}"
        )

    canonical: Dict[str, Any] = {
        "templateName": template_name,
        "filterKey": scope_variables,
        "tagEnabled": len(tags) >= 1,
        "monitoringProvider": _text(doc.get("monitoringProvider")),
        "accountName": _text(doc.get("accountName")),
        "scoringAlgorithm": _text(doc.get("scoringAlgorithm")),
    }
    if doc.get("index"):
        canonical["index"] = doc["index"]
    canonical["responseKeywords"] = _text(doc.get("responseKeywords"))
    for key in _OPTIONAL_KEYS:
        if doc.get(key):
            canonical[key] = doc[key]
    if tags:
        canonical["tags"] = tags
    canonical["errorTopics"] = merge_error_topics(user_topics, default_topics, disable_defaults)
    return canonical


def _mapping_list(value, key: str, prefix: str) -> List[dict]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise TemplateSyncError(f"{prefix}: {key} must be a list of mappings")
    return value


def _text(value) -> str:
    if value is None:
        return ""
    return str(value)
