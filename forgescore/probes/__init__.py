"""Verification probes that turn external reality into evidence."""

from .github import GitHubContributorResult, parse_repo_url, probe_github_contributor
from .http import HttpProbeResult, probe_deployment
from .runner import (
    DeliveryTarget,
    ProbeRunResult,
    VerificationSummary,
    ingest_stack_inference,
    run_probes_for_delivery,
    summarize_delivery_verification,
)
from .stack import StackInferenceResult, infer_stack_from_dependencies

__all__ = [
    "GitHubContributorResult",
    "parse_repo_url",
    "probe_github_contributor",
    "HttpProbeResult",
    "probe_deployment",
    "DeliveryTarget",
    "ProbeRunResult",
    "VerificationSummary",
    "ingest_stack_inference",
    "run_probes_for_delivery",
    "summarize_delivery_verification",
    "StackInferenceResult",
    "infer_stack_from_dependencies",
]
