"""CLI entry point for submitting and polling canary analyses."""

import json
import sys
import time

import click

from canary_gate.config_store import DirectoryConfigStore
from canary_gate.errors import AnalysisError
from canary_gate.evidence import append_event, create_event
from canary_gate.loader import load_spec
from canary_gate.models import (
    PHASE_ERROR,
    PHASE_FAILED,
    PHASE_INCONCLUSIVE,
    PHASE_RUNNING,
    Measurement,
)
from canary_gate.poller import utcnow
from canary_gate.provider import AnalysisProvider
from canary_gate.settings import setup_logging
from canary_gate.verdict import describe

_EXIT_CODES = {PHASE_ERROR: 1, PHASE_FAILED: 2, PHASE_INCONCLUSIVE: 3}

_spec_option = click.option(
    "--spec",
    "spec_path",
    required=True,
    type=click.Path(exists=True),
    help="Path to the analysis spec (YAML or JSON).",
)
_profile_dir_option = click.option(
    "--profile-dir",
    required=True,
    type=click.Path(exists=True, file_okay=False),
    help="Directory holding <namespace>/<name>.yaml secrets and template maps.",
)
_namespace_option = click.option(
    "--namespace", default="default", show_default=True, help="Namespace to read objects from."
)
_log_option = click.option(
    "--log",
    "log_path",
    default=None,
    type=click.Path(),
    help="Optional path to the evidence log (JSONL). Appends an entry when provided.",
)


def _make_provider(profile_dir: str) -> AnalysisProvider:
    return AnalysisProvider(DirectoryConfigStore(profile_dir))


def _load(spec_path):
    try:
        return load_spec(spec_path)
    except AnalysisError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


def _finish(spec, measurement: Measurement, log_path, as_json: bool = True):
    if as_json:
        click.echo(json.dumps(measurement.to_dict(), indent=2))
    else:
        click.echo(describe(measurement))
    if log_path:
        append_event(create_event(spec.application, measurement), log_path)
    code = _EXIT_CODES.get(measurement.phase, 0)
    if code:
        sys.exit(code)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose):
    """Canary analysis gate -- submit baseline/canary comparisons and read back verdicts."""
    setup_logging("DEBUG" if verbose else None)


@main.command()
@_spec_option
@_profile_dir_option
@_namespace_option
def payload(spec_path, profile_dir, namespace):
    """Print the registerCanary payload without submitting it."""
    spec = _load(spec_path)
    try:
        built = _make_provider(profile_dir).payload(spec, namespace)
    except AnalysisError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    click.echo(json.dumps(built.to_dict(), indent=2))


@main.command()
@_spec_option
@_profile_dir_option
@_namespace_option
@_log_option
def submit(spec_path, profile_dir, namespace, log_path):
    """Register a canary analysis and print the Running measurement."""
    spec = _load(spec_path)
    measurement = _make_provider(profile_dir).run(spec, namespace)
    _finish(spec, measurement, log_path)


@main.command()
@_spec_option
@_profile_dir_option
@_namespace_option
@click.option("--canary-id", required=True, help="Canary id returned by submit.")
@click.option("--report-id", default="", help="Report token returned by submit.")
@_log_option
def poll(spec_path, profile_dir, namespace, canary_id, report_id, log_path):
    """Poll a submitted analysis once and print the updated measurement."""
    spec = _load(spec_path)
    measurement = Measurement(
        phase=PHASE_RUNNING,
        metadata={"canaryId": canary_id, "reportId": report_id},
        started_at=utcnow(),
    )
    measurement = _make_provider(profile_dir).resume(spec, namespace, measurement)
    _finish(spec, measurement, log_path)


@main.command()
@_spec_option
@_profile_dir_option
@_namespace_option
@_log_option
@click.option(
    "--max-polls",
    default=0,
    type=int,
    help="Stop after this many polls (0 polls until the analysis finishes).",
)
def run(spec_path, profile_dir, namespace, log_path, max_polls):
    """Submit an analysis and poll it until a verdict is reached."""
    spec = _load(spec_path)
    provider = _make_provider(profile_dir)

    measurement = provider.run(spec, namespace)
    polls = 0
    while measurement.phase == PHASE_RUNNING:
        if max_polls and polls >= max_polls:
            break
        if measurement.resume_at is not None:
            delay = (measurement.resume_at - utcnow()).total_seconds()
            if delay > 0:
                time.sleep(delay)
        measurement = provider.resume(spec, namespace, measurement)
        polls += 1

    _finish(spec, measurement, log_path, as_json=False)


if __name__ == "__main__":
    main()
