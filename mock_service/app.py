"""In-memory stand-in for the remote analysis service.

Templates are kept by (type, name, sha1). Submitted canaries report RUNNING
for a configurable number of polls and then finish with a fixed status and
score.
"""

import hashlib
import itertools
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from canary_gate.settings import (
    REGISTER_CANARY_PATH,
    REPORT_TOKEN_HEADER,
    SCORE_URL_PATH,
    TEMPLATE_API,
    USER_HEADER,
)

app = FastAPI(title="Mock Analysis Service")

state: Dict[str, Any] = {}


def reset_state(running_polls: int = 1, overall_score: Any = 100, final_status: str = "COMPLETED"):
    """Forget every template and canary and set the outcome of new submissions."""
    state.clear()
    state.update(
        templates={},
        template_posts=[],
        canaries={},
        submissions=[],
        ids=itertools.count(1),
        running_polls=running_polls,
        overall_score=overall_score,
        final_status=final_status,
    )


reset_state()


@app.get("/")
async def root():
    return {"status": "ok"}


@app.get(TEMPLATE_API)
async def verify_template(sha1: str, templateType: str, templateName: str):
    return (templateType, templateName, sha1) in state["templates"]


@app.post(TEMPLATE_API)
async def create_template(request: Request, sha1: str, templateType: str, templateName: str):
    body = await request.body()
    state["template_posts"].append((templateType, templateName, sha1))
    if hashlib.sha1(body).hexdigest() != sha1:
        return {"status": "FAILED", "errorMessage": f"sha1 mismatch for template {templateName}"}
    state["templates"][(templateType, templateName, sha1)] = body.decode("utf-8")
    return {"status": "CREATED"}


@app.post(REGISTER_CANARY_PATH)
async def register_canary(request: Request):
    if not request.headers.get(USER_HEADER):
        return {"error": "Unauthorized", "message": f"{USER_HEADER} header is required"}
    payload = await request.json()
    if not isinstance(payload, dict) or not payload.get("canaryDeployments"):
        return {"error": "Bad Request", "message": "canaryDeployments must not be empty"}

    canary_id = next(state["ids"])
    state["submissions"].append(payload)
    state["canaries"][str(canary_id)] = {
        "polls": 0,
        "running_polls": state["running_polls"],
        "overall_score": state["overall_score"],
        "final_status": state["final_status"],
    }
    return JSONResponse(
        {"canaryId": canary_id},
        headers={REPORT_TOKEN_HEADER: f"report-{canary_id}"},
    )


@app.get(SCORE_URL_PATH + "{canary_id}")
async def get_canary(request: Request, canary_id: str):
    canary = state["canaries"].get(canary_id)
    if canary is None:
        raise HTTPException(status_code=404, detail=f"canary {canary_id} not found")

    canary["polls"] += 1
    report_url = f"{str(request.base_url).rstrip('/')}/ui/application/report/{canary_id}"
    if canary["polls"] <= canary["running_polls"]:
        return {"status": {"status": "RUNNING"}, "canaryResult": {"canaryReportURL": report_url}}
    return {
        "status": {"status": canary["final_status"]},
        "canaryResult": {
            "overallScore": canary["overall_score"],
            "canaryReportURL": report_url,
            "intervalNo": canary["polls"] - canary["running_polls"],
        },
    }


# Run with: uvicorn mock_service.app:app --port 8001 --reload
