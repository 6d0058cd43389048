"""Tests for the provider entry points, end to end against the mock service."""

import os

import pytest
from fastapi.testclient import TestClient

from canary_gate.config_store import DirectoryConfigStore, InMemoryConfigStore
from canary_gate.errors import SpecValidationError
from canary_gate.loader import load_spec
from canary_gate.models import (
    CD_INTEGRATION_ARGO_CD,
    CD_INTEGRATION_ARGO_ROLLOUTS,
    PHASE_ERROR,
    PHASE_INCONCLUSIVE,
    PHASE_RUNNING,
    PHASE_SUCCESSFUL,
    AnalysisSpec,
    RunProfile,
)
from canary_gate.provider import AnalysisProvider, client_factory_for, process
from canary_gate.settings import Settings
from mock_service.app import app, reset_state, state


FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "..", "fixtures")
PROFILES_DIR = os.path.join(FIXTURES_DIR, "profiles")

NOW_MS = 1660137300000


@pytest.fixture(autouse=True)
def fresh_service():
    reset_state(running_polls=1, overall_score=85)
    yield
    reset_state()


@pytest.fixture
def provider():
    return AnalysisProvider(
        DirectoryConfigStore(PROFILES_DIR),
        settings=Settings(poll_interval_seconds=0.0),
        client_factory=client_factory_for(TestClient(app)),
    )


def _spec(name):
    return load_spec(os.path.join(FIXTURES_DIR, name))


class TestProcess:
    def test_single_service_payload(self):
        profile = RunProfile(
            user="admin",
            opsmx_isd_url="http://testserver",
            source_name="sourcename",
            cd_integration=CD_INTEGRATION_ARGO_CD,
            agent_name="agent-1",
        )
        payload = process(
            _spec("single-metric-spec.yaml"), profile, "default",
            InMemoryConfigStore(), client=None, current_ms=NOW_MS,
        ).to_dict()
        deployment = payload["canaryDeployments"][0]
        assert deployment["canary"]["metric"]["service1"] == {
            "pod_name": "podHashCanary",
            "serviceGate": "gate1",
            "template": "metrictemplate",
            "templateVersion": "v1.0",
        }
        assert deployment["baseline"]["metric"]["service1"]["pod_name"] == "podHashBaseline"
        assert payload["agentName"] == "agent-1"

    def test_application_required_for_argocd(self):
        spec = _spec("single-metric-spec.yaml")
        spec.application = ""
        profile = RunProfile("admin", "http://testserver", "src", CD_INTEGRATION_ARGO_CD, "agent")
        with pytest.raises(SpecValidationError, match="Application Name not mentioned"):
            process(spec, profile, "default", InMemoryConfigStore(), client=None, current_ms=NOW_MS)

    def test_application_optional_for_rollouts(self):
        spec = _spec("single-metric-spec.yaml")
        spec.application = ""
        profile = RunProfile("admin", "http://testserver", "src", CD_INTEGRATION_ARGO_ROLLOUTS)
        payload = process(spec, profile, "default", InMemoryConfigStore(), client=None, current_ms=NOW_MS)
        assert payload.application == ""


class TestRunAndResume:
    def test_full_cycle(self, provider):
        spec = _spec("single-metric-spec.yaml")

        measurement = provider.run(spec, "default")
        assert measurement.phase == PHASE_RUNNING
        assert measurement.metadata == {"canaryId": "1", "reportId": "report-1"}
        assert measurement.resume_at is not None

        submitted = state["submissions"][0]
        assert submitted["sourceName"] == "sourcename"
        assert submitted["sourceType"] == "argocd"
        assert submitted["canaryConfig"]["lifetimeMinutes"] == "30"
        assert submitted["canaryDeployments"][0]["canary"]["metric"]["service1"]["serviceGate"] == "gate1"

        measurement = provider.resume(spec, "default", measurement)
        assert measurement.phase == PHASE_RUNNING
        assert measurement.metadata["reportUrl"].endswith("/ui/application/report/1")

        measurement = provider.resume(spec, "default", measurement)
        assert measurement.phase == PHASE_INCONCLUSIVE
        assert measurement.value == "85"
        assert measurement.finished_at is not None
        assert measurement.resume_at is None

    def test_successful_verdict(self, provider):
        reset_state(running_polls=0, overall_score=97)
        spec = _spec("multi-service-spec.json")
        measurement = provider.resume(spec, "default", provider.run(spec, "default"))
        assert measurement.phase == PHASE_SUCCESSFUL
        assert measurement.value == "97"

    def test_multi_service_submission(self, provider):
        spec = _spec("multi-service-spec.json")
        provider.run(spec, "default")
        assert state["submissions"][0]["canaryConfig"]["lifetimeMinutes"] == "30"
        assert set(state["submissions"][0]["canaryDeployments"][0]["canary"]["metric"]) == {
            "service1", "service2",
        }

    def test_gitops_templates_synced_once(self, provider):
        spec = _spec("gitops-spec.yaml")

        first = provider.run(spec, "gitops")
        assert first.phase == PHASE_RUNNING
        assert len(state["template_posts"]) == 2

        second = provider.run(spec, "gitops")
        assert second.phase == PHASE_RUNNING
        assert len(state["template_posts"]) == 2

        canary = state["submissions"][0]["canaryDeployments"][0]["canary"]
        log_sha1 = canary["log"]["checkout"]["templateSha1"]
        metric_sha1 = canary["metric"]["checkout"]["templateSha1"]
        assert ("LOG", "loggytemplate", log_sha1) in state["templates"]
        assert ("METRIC", "metrictemplate", metric_sha1) in state["templates"]
        assert state["submissions"][1]["canaryDeployments"][0]["canary"]["log"]["checkout"][
            "templateSha1"
        ] == log_sha1

    def test_gitops_interval_settings_submitted(self, provider):
        provider.run(_spec("gitops-spec.yaml"), "gitops")
        config = state["submissions"][0]["canaryConfig"]
        assert config["lookBackType"] == "growing"
        assert config["interval"] == "3"


class TestErrorMeasurements:
    def test_missing_profile(self, provider):
        measurement = provider.run(_spec("single-metric-spec.yaml"), "nowhere")
        assert measurement.phase == PHASE_ERROR
        assert "opsmx profile secret validation error" in measurement.message
        assert measurement.finished_at is not None
        assert state["submissions"] == []

    def test_invalid_spec(self, provider):
        spec = AnalysisSpec(pass_score=80, marginal_score=90, lifetime_minutes=30, application="x")
        measurement = provider.run(spec, "default")
        assert measurement.phase == PHASE_ERROR
        assert measurement.message == (
            "analysisTemplate validation error: pass score cannot be less than marginal score"
        )

    def test_missing_gitops_template(self, provider):
        spec = _spec("gitops-spec.yaml")
        spec.services[0].log_template_name = "absenttemplate"
        measurement = provider.run(spec, "gitops")
        assert measurement.phase == PHASE_ERROR
        assert "gitops 'absenttemplate' template config map validation error" in measurement.message
        assert state["submissions"] == []

    def test_unknown_canary(self, provider):
        spec = _spec("single-metric-spec.yaml")
        running = provider.run(spec, "default")
        running.metadata["canaryId"] = "999"
        measurement = provider.resume(spec, "default", running)
        assert measurement.phase == PHASE_ERROR
        assert "HTTP 404" in measurement.message

    def test_payload_raises_instead(self, provider):
        spec = AnalysisSpec(pass_score=80, marginal_score=90, lifetime_minutes=30, application="x")
        with pytest.raises(SpecValidationError):
            provider.payload(spec, "default")


class TestTerminate:
    def test_returns_measurement_unchanged(self, provider):
        spec = _spec("single-metric-spec.yaml")
        running = provider.run(spec, "default")
        assert provider.terminate(spec, "default", running) is running
        assert running.phase == PHASE_RUNNING
