"""Turn a remote overall score into a verdict and describe measurements."""

import math
from typing import List, Tuple

from canary_gate.errors import TransportError
from canary_gate.models import (
    PHASE_ERROR,
    PHASE_FAILED,
    PHASE_INCONCLUSIVE,
    PHASE_RUNNING,
    PHASE_SUCCESSFUL,
    Measurement,
)


def coerce_score(raw) -> Tuple[str, int]:
    """Return (display value, integer score) for a raw overallScore.

    A missing score counts as 0. Fractional scores round half up, so 84.5
    becomes 85.

    Raises:
        TransportError: If the score is not numeric.
    """
    if raw is None:
        return "0", 0
    if isinstance(raw, bool):
        raise TransportError(f"analysis Error: overallScore is not numeric: {raw!r}")
    if isinstance(raw, int):
        return str(raw), raw
    if isinstance(raw, float):
        _require_finite(raw, raw)
        text = str(int(raw)) if raw.is_integer() else repr(raw)
        return text, round_half_up(raw)
    text = str(raw).strip()
    try:
        value = float(text)
    except ValueError as exc:
        raise TransportError(f"analysis Error: overallScore is not numeric: {raw!r}") from exc
    _require_finite(value, raw)
    return text, round_half_up(value)


def _require_finite(value: float, raw) -> None:
    if not math.isfinite(value):
        raise TransportError(f"analysis Error: overallScore is not a finite number: {raw!r}")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def evaluate_result(score: int, pass_score: int, marginal_score: int) -> str:
    if score >= pass_score:
        return PHASE_SUCCESSFUL
    if score >= marginal_score:
        return PHASE_INCONCLUSIVE
    return PHASE_FAILED


def describe(measurement: Measurement) -> str:
    """Build a short human-readable narrative for a measurement."""
    lines: List[str] = []
    phase = measurement.phase
    if phase == PHASE_SUCCESSFUL:
        lines.append(f"Analysis PASSED with score {measurement.value}.")
    elif phase == PHASE_INCONCLUSIVE:
        lines.append(f"Analysis INCONCLUSIVE with score {measurement.value}.")
    elif phase == PHASE_FAILED:
        if measurement.value:
            lines.append(f"Analysis FAILED with score {measurement.value}.")
        else:
            lines.append(f"Analysis FAILED: {measurement.message}")
    elif phase == PHASE_ERROR:
        lines.append(f"Analysis ERROR: {measurement.message}")
    elif phase == PHASE_RUNNING:
        lines.append("Analysis is still RUNNING.")
    else:
        lines.append(f"Analysis phase: {phase or 'unknown'}")

    metadata = measurement.metadata
    if metadata.get("canaryId"):
        lines.append(f"Canary id: {metadata['canaryId']}")
    if metadata.get("reportUrl"):
        lines.append(f"Report: {metadata['reportUrl']}")
    if metadata.get("interval analysis message"):
        lines.append(metadata["interval analysis message"])
    return "\n".join(lines)
