"""Key-value configuration objects (secrets, template maps) and run profiles."""

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

import yaml

from canary_gate.errors import ConfigStoreError, ProfileValidationError
from canary_gate.loader import DOCUMENT_EXTENSIONS, read_document
from canary_gate.models import (
    CD_INTEGRATION_ARGO_CD,
    CD_INTEGRATION_ARGO_ROLLOUTS,
    AnalysisSpec,
    RunProfile,
)

logger = logging.getLogger(__name__)

_PROFILE_PREFIX = "opsmx profile secret validation error: "


class ConfigStore(ABC):
    """Named string maps grouped by namespace."""

    @abstractmethod
    def get(self, namespace: str, name: str) -> Mapping[str, str]:
        """Return the data of object ``name`` in ``namespace``.

        Raises:
            ConfigStoreError: If the object does not exist.
        """


class InMemoryConfigStore(ConfigStore):
    def __init__(self, objects: Optional[Dict[str, Dict[str, Mapping[str, str]]]] = None):
        self._objects = objects or {}

    def put(self, namespace: str, name: str, data: Mapping[str, str]) -> None:
        self._objects.setdefault(namespace, {})[name] = dict(data)

    def get(self, namespace: str, name: str) -> Mapping[str, str]:
        try:
            return dict(self._objects[namespace][name])
        except KeyError:
            raise ConfigStoreError(f'"{name}" not found in namespace "{namespace}"') from None


class DirectoryConfigStore(ConfigStore):
    """Objects stored as ``<root>/<namespace>/<name>.{yaml,yml,json}``.

    A file may hold the data mapping directly, or a manifest whose
    ``stringData`` or ``data`` field holds it.
    """

    def __init__(self, root: str):
        self.root = root

    def get(self, namespace: str, name: str) -> Mapping[str, str]:
        path = self._find(namespace, name)
        try:
            raw = read_document(path)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ConfigStoreError(f'failed to read "{name}" from {path}: {exc}') from exc

        if isinstance(raw, dict):
            for key in ("stringData", "data"):
                if isinstance(raw.get(key), dict):
                    raw = raw[key]
                    break
        if not isinstance(raw, dict):
            raise ConfigStoreError(f'"{name}" in {path} must be a mapping')
        return {str(k): _as_text(v) for k, v in raw.items()}

    def _find(self, namespace: str, name: str) -> str:
        for ext in DOCUMENT_EXTENSIONS:
            path = os.path.join(self.root, namespace, name + ext)
            if os.path.isfile(path):
                return path
        raise ConfigStoreError(f'"{name}" not found in namespace "{namespace}"')


def load_run_profile(
    store: ConfigStore,
    spec: AnalysisSpec,
    namespace: str,
    default_profile: str = "opsmx-profile",
) -> RunProfile:
    """Read the run profile secret and apply spec-level overrides.

    The secret must carry ``user``, ``opsmxIsdUrl``, ``sourceName`` and
    ``cdIntegration`` (``"true"`` or ``"false"``); ``agentName`` is required
    only when ``cdIntegration`` is ``"true"``. A non-empty ``user`` or
    ``opsmxIsdUrl`` on the analysis spec takes precedence over the secret.

    Raises:
        ProfileValidationError: If the secret is absent or malformed.
    """
    secret_name = spec.profile or default_profile
    try:
        data = store.get(namespace, secret_name)
    except ConfigStoreError as exc:
        raise ProfileValidationError(_PROFILE_PREFIX + str(exc)) from exc

    for key in ("user", "opsmxIsdUrl", "sourceName", "cdIntegration"):
        if key not in data:
            raise ProfileValidationError(_missing_key(key))

    cd_integration = data["cdIntegration"]
    if "agentName" not in data and cd_integration == "true":
        raise ProfileValidationError(
            _missing_key("agentName") + " for 'cdIntegration' as 'true'"
        )
    if cd_integration not in ("true", "false"):
        raise ProfileValidationError(
            _PROFILE_PREFIX + "`cdIntegration` should be either true or false"
        )

    profile = RunProfile(
        user=spec.user or data["user"],
        opsmx_isd_url=spec.opsmx_isd_url or data["opsmxIsdUrl"],
        source_name=data["sourceName"],
        cd_integration=(
            CD_INTEGRATION_ARGO_CD if cd_integration == "true" else CD_INTEGRATION_ARGO_ROLLOUTS
        ),
        agent_name=data.get("agentName", ""),
    )
    logger.debug("loaded run profile %s/%s for user %s", namespace, secret_name, profile.user)
    return profile


def _missing_key(key: str) -> str:
    return (
        _PROFILE_PREFIX + f"`{key}` key not present in the secret file\n"
        f" Action Required: secret file must carry data element '{key}'"
    )


def _as_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)
