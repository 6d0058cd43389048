"""Content-addressed synchronization of log/metric templates."""

import dataclasses
import hashlib
import json
import logging
from typing import Any, Dict, List

from canary_gate.client import AnalysisServiceClient
from canary_gate.config_store import ConfigStore
from canary_gate.errors import (
    ConfigStoreError,
    TemplateCreateFailed,
    TemplateMapMissing,
    TemplateNameMismatch,
    TemplateNameMissing,
)
from canary_gate.log_template import process_yaml_logs
from canary_gate.metric_template import process_yaml_metrics
from canary_gate.models import TEMPLATE_LOG, ResolvedLeg

logger = logging.getLogger(__name__)

STATUS_CREATED = "CREATED"


def generate_sha1(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


# Characters Go's encoding/json escapes even when writing raw UTF-8.
_GO_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def canonical_json(doc: Dict[str, Any]) -> str:
    """Compact JSON in the dict's own key order, byte-for-byte as Go's json.Marshal."""
    text = json.dumps(doc, separators=(",", ":"), ensure_ascii=False)
    for char, escaped in _GO_ESCAPES:
        text = text.replace(char, escaped)
    return text


class TemplateResolver:
    """Ensure the remote service holds the exact template a leg references.

    Templates are read from the config store (an object named after the
    template, holding a data key of the same name). JSON templates are used
    verbatim; YAML templates are canonicalized first. The canonical text is
    hashed and uploaded only when the service does not already know the
    hash.
    """

    def __init__(self, store: ConfigStore, client: AnalysisServiceClient):
        self.store = store
        self.client = client

    def resolve(self, template_name: str, kind: str, scope_variables: str, namespace: str) -> str:
        """Return the SHA-1 of the canonical template, uploading it if needed.

        Raises:
            TemplateSyncError: If the template is missing, malformed,
                mismatched, or rejected by the remote service.
            TransportError: If the remote service cannot be reached.
        """
        body = self.canonical_template(template_name, kind, scope_variables, namespace)
        sha1 = generate_sha1(body)

        if self.client.template_exists(sha1, kind, template_name):
            logger.info("template %s (%s) already registered as %s", template_name, kind, sha1)
            return sha1

        logger.info("registering %s template %s as %s", kind, template_name, sha1)
        answer = self.client.create_template(sha1, kind, template_name, body)
        if answer.get("status") != STATUS_CREATED:
            message = answer.get("errorMessage") or answer.get("error")
            raise TemplateCreateFailed(f"{_prefix(template_name)}: {message}")
        return sha1

    def canonical_template(
        self, template_name: str, kind: str, scope_variables: str, namespace: str
    ) -> str:
        """Load a template from the config store and return its canonical text."""
        try:
            data = self.store.get(namespace, template_name)
        except ConfigStoreError as exc:
            raise TemplateMapMissing(f"{_prefix(template_name)}: {exc}") from exc
        if template_name not in data:
            raise TemplateMapMissing(
                f"{_prefix(template_name)}: missing data element {template_name}"
            )
        raw = data[template_name]

        parsed = _try_json(raw)
        if parsed is _NOT_JSON:
            if kind == TEMPLATE_LOG:
                doc = process_yaml_logs(raw, template_name, scope_variables)
            else:
                doc = process_yaml_metrics(raw, template_name, scope_variables)
            return canonical_json(doc)

        embedded = parsed.get("templateName") if isinstance(parsed, dict) else None
        if not embedded:
            raise TemplateNameMissing(
                f"{_prefix(template_name)}: template name not provided inside json"
            )
        if embedded != template_name:
            raise TemplateNameMismatch(
                f"{_prefix(template_name)}: Mismatch between templateName and "
                f"data.{template_name} key"
            )
        return raw


def attach_template_hashes(
    legs: List[ResolvedLeg], resolver: TemplateResolver, namespace: str
) -> List[ResolvedLeg]:
    """Resolve a content hash for every leg that carries no explicit version.

    Legs are synchronized one at a time; the first failure aborts the run.
    """
    resolved = []
    for leg in legs:
        if leg.template_version:
            resolved.append(leg)
            continue
        sha1 = resolver.resolve(leg.template, leg.kind, leg.scope_variables, namespace)
        resolved.append(dataclasses.replace(leg, template_sha1=sha1))
    return resolved


_NOT_JSON = object()


def _try_json(raw: str):
    try:
        return json.loads(raw)
    except ValueError:
        return _NOT_JSON


def _prefix(template_name: str) -> str:
    return f"gitops '{template_name}' template config map validation error"
