"""HTTP client for the remote analysis service."""

import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from canary_gate.errors import RemoteRejectionError, TemplateSyncError, TransportError
from canary_gate.models import JobHandle, PollResult, SubmissionPayload
from canary_gate.settings import (
    REGISTER_CANARY_PATH,
    REPORT_TOKEN_HEADER,
    SCORE_URL_PATH,
    TEMPLATE_API,
    USER_HEADER,
)

logger = logging.getLogger(__name__)


def join_url(base: str, *parts: str) -> str:
    url = base.rstrip("/")
    for part in parts:
        part = part.strip("/")
        if part:
            url = f"{url}/{part}"
    return url


def get_template_url(base_url: str, sha1: str, template_type: str, template_name: str) -> str:
    """Lookup URL for a template; query parameters are sorted by key."""
    query = urlencode(
        sorted({"sha1": sha1, "templateType": template_type, "templateName": template_name}.items())
    )
    return f"{join_url(base_url, TEMPLATE_API)}?{query}"


class AnalysisServiceClient:
    """Synchronous client for the template, submission and status endpoints.

    Every request carries the caller identity header and a JSON content
    type. Network failures and unreadable responses surface as
    TransportError.
    """

    def __init__(
        self,
        base_url: str,
        user: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url
        self.user = user
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "AnalysisServiceClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- endpoints ---------------------------------------------------------------

    def check_base_url(self) -> None:
        """Probe the base URL; any non-200 answer is an error."""
        try:
            resp = self._client.get(self.base_url)
        except httpx.TimeoutException as exc:
            raise TransportError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                f"analysisTemplate/secret validation error: incorrect opsmxIsdUrl: {self.base_url}"
            ) from exc
        if resp.status_code != 200:
            raise TransportError(f"{resp.status_code} {resp.reason_phrase}")

    def template_exists(self, sha1: str, template_type: str, template_name: str) -> bool:
        url = get_template_url(self.base_url, sha1, template_type, template_name)
        data = self._decode(self._request("GET", url))
        if not isinstance(data, bool):
            raise TemplateSyncError(
                "analysis Error: Expected bool response from gitops verifyTemplate response "
                f"Error: got {data!r}. Action: Check endpoint given in secret/analysisTemplate"
            )
        return data

    def create_template(
        self, sha1: str, template_type: str, template_name: str, body: str
    ) -> Dict[str, Any]:
        """POST canonical template bytes; returns the service's JSON answer."""
        url = get_template_url(self.base_url, sha1, template_type, template_name)
        data = self._decode(self._request("POST", url, body))
        if not isinstance(data, dict):
            raise TransportError(f"analysis Error: unexpected template create response: {data!r}")
        return data

    def register_canary(self, payload: SubmissionPayload) -> JobHandle:
        url = join_url(self.base_url, REGISTER_CANARY_PATH)
        body = json.dumps(payload.to_dict())
        logger.debug("registerCanary payload: %s", body)
        logger.info("sending a POST request to registerCanary with the payload")
        resp = self._request("POST", url, body)
        data = self._decode(resp)
        if not isinstance(data, dict):
            raise TransportError(f"analysis Error: unexpected registerCanary response: {data!r}")
        logger.info("register canary response %s", data)
        if data.get("error"):
            raise RemoteRejectionError(
                f"analysis Error: {data['error']}\nMessage: {data.get('message', '')}"
            )
        canary_id = data.get("canaryId")
        if canary_id is None or canary_id == "":
            raise RemoteRejectionError("analysis Error: registerCanary response carried no canaryId")
        return JobHandle(
            canary_id=str(canary_id),
            report_token=resp.headers.get(REPORT_TOKEN_HEADER, ""),
        )

    def get_canary(self, canary_id: str) -> PollResult:
        url = join_url(self.base_url, SCORE_URL_PATH, canary_id)
        resp = self._request("GET", url)
        if resp.status_code >= 400:
            raise TransportError(
                f"analysis Error: status request for canary {canary_id} returned HTTP {resp.status_code}"
            )
        data = self._decode(resp)
        if not isinstance(data, dict):
            raise TransportError(
                "analysis Error: Error in post processing canary Response: expected a JSON object"
            )
        result = data.get("canaryResult") or {}
        status = data.get("status") or {}
        for key, value in (("canaryResult", result), ("status", status)):
            if not isinstance(value, dict):
                raise TransportError(
                    "analysis Error: Error in post processing canary Response: "
                    f"{key} must be a JSON object, got {value!r}"
                )
        interval_no = result.get("intervalNo")
        report_url = result.get("canaryReportURL")
        return PollResult(
            status=str(status.get("status") or ""),
            report_url="" if report_url is None else str(report_url),
            interval_no=None if interval_no is None else str(interval_no),
            overall_score=result.get("overallScore"),
        )

    # -- plumbing ----------------------------------------------------------------

    def _request(self, method: str, url: str, body: str = "") -> httpx.Response:
        headers = {USER_HEADER: self.user, "Content-Type": "application/json"}
        try:
            return self._client.request(method, url, content=body or None, headers=headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(
                f"analysis Error: could not decode response from {resp.request.url}: {exc}"
            ) from exc
