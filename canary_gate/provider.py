"""Entry points a progressive-delivery controller calls for each analysis tick."""

import logging
from typing import Callable, Optional

import httpx

from canary_gate.client import AnalysisServiceClient
from canary_gate.config_store import ConfigStore, load_run_profile
from canary_gate.errors import AnalysisError, SpecValidationError
from canary_gate.loader import basic_checks
from canary_gate.models import (
    CD_INTEGRATION_ARGO_ROLLOUTS,
    PHASE_ERROR,
    AnalysisSpec,
    Measurement,
    RunProfile,
    SubmissionPayload,
)
from canary_gate.payload import build_payload, resolve_timing
from canary_gate.poller import PollingStateMachine, start_measurement, utcnow
from canary_gate.services import validate_services
from canary_gate.settings import Settings, settings as default_settings
from canary_gate.templates import TemplateResolver, attach_template_hashes

logger = logging.getLogger(__name__)


def process(
    spec: AnalysisSpec,
    profile: RunProfile,
    namespace: str,
    store: ConfigStore,
    client: AnalysisServiceClient,
    current_ms: Optional[int] = None,
) -> SubmissionPayload:
    """Validate a spec, synchronize gitops templates and build the payload.

    All-or-nothing: the first failing check or template sync aborts the
    whole submission.
    """
    basic_checks(spec)
    timing = resolve_timing(spec, current_ms)
    if not spec.application and profile.cd_integration != CD_INTEGRATION_ARGO_ROLLOUTS:
        raise SpecValidationError(
            "analysisTemplate validation error: Application Name not mentioned nor can it be derived"
        )

    legs = validate_services(spec)
    if spec.gitops:
        legs = attach_template_hashes(legs, TemplateResolver(store, client), namespace)
    return build_payload(spec, profile, legs, timing)


def mark_measurement_error(measurement: Measurement, error: Exception) -> Measurement:
    measurement.phase = PHASE_ERROR
    measurement.message = str(error)
    measurement.resume_at = None
    measurement.finished_at = utcnow()
    return measurement


class AnalysisProvider:
    """Run/Resume/Terminate operations over a config store and the remote service.

    Failures never propagate to the caller: they come back as an
    Error-phase measurement carrying the message.
    """

    def __init__(
        self,
        store: ConfigStore,
        settings: Optional[Settings] = None,
        client_factory: Optional[Callable[[RunProfile], AnalysisServiceClient]] = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self._client_factory = client_factory or self._default_client

    def _default_client(self, profile: RunProfile) -> AnalysisServiceClient:
        return AnalysisServiceClient(
            profile.opsmx_isd_url,
            profile.user,
            timeout=self.settings.http_timeout_seconds,
        )

    def _profile(self, spec: AnalysisSpec, namespace: str) -> RunProfile:
        return load_run_profile(self.store, spec, namespace, self.settings.default_profile)

    def payload(self, spec: AnalysisSpec, namespace: str) -> SubmissionPayload:
        """Build the payload without submitting it (templates are still synced)."""
        profile = self._profile(spec, namespace)
        with self._client_factory(profile) as client:
            return process(spec, profile, namespace, self.store, client)

    def run(self, spec: AnalysisSpec, namespace: str) -> Measurement:
        measurement = Measurement(started_at=utcnow())
        try:
            profile = self._profile(spec, namespace)
            with self._client_factory(profile) as client:
                if self.settings.check_base_url:
                    client.check_base_url()
                payload = process(spec, profile, namespace, self.store, client)
                handle = client.register_canary(payload)
        except AnalysisError as exc:
            logger.error("analysis submission failed: %s", exc)
            return mark_measurement_error(measurement, exc)

        logger.info("registered canary %s for %s", handle.canary_id, spec.application)
        running = start_measurement(handle, self.settings.poll_interval_seconds)
        running.started_at = measurement.started_at
        return running

    def resume(self, spec: AnalysisSpec, namespace: str, measurement: Measurement) -> Measurement:
        try:
            profile = self._profile(spec, namespace)
            with self._client_factory(profile) as client:
                machine = PollingStateMachine(
                    client, spec, resume_after=self.settings.poll_interval_seconds
                )
                return machine.resume(measurement)
        except AnalysisError as exc:
            logger.error("analysis poll failed: %s", exc)
            return mark_measurement_error(measurement, exc)

    def terminate(self, spec: AnalysisSpec, namespace: str, measurement: Measurement) -> Measurement:
        # The remote service owns cancellation; nothing to do locally.
        return measurement


def client_factory_for(http_client: httpx.Client, timeout: float = 30.0):
    """Client factory that routes every request through ``http_client``."""

    def factory(profile: RunProfile) -> AnalysisServiceClient:
        return AnalysisServiceClient(
            profile.opsmx_isd_url, profile.user, timeout=timeout, http_client=http_client
        )

    return factory
