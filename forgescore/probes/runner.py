"""Probe orchestration for a delivery.

Runs the HTTP and GitHub probes, ingests what they find, infers ownership
from the combination and enqueues one recompute when anything new landed.
Ownership is always inferred from probe results, never taken from the
builder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import httpx

from forgescore.config.settings import ProbeSettings
from forgescore.ledger.evidence import EvidenceLedger
from forgescore.pipeline.queue import RecomputeQueue
from forgescore.scoring.types import (
    EvidenceParams,
    EvidenceSource,
    EvidenceType,
    OwnershipPayload,
    RecomputeTrigger,
    ScoreEvidence,
)

from .client import client_scope
from .github import GitHubContributorResult, probe_github_contributor
from .http import HttpProbeResult, probe_deployment
from .stack import infer_stack_from_dependencies

logger = logging.getLogger(__name__)

OWNERSHIP_STRONG_CONFIDENCE = 0.9
OWNERSHIP_WEAK_CONFIDENCE = 0.5
REPO_STACK_CONFIDENCE = 0.7

VERIFICATION_VERIFIED = "verified"
VERIFICATION_PARTIAL = "partial"
VERIFICATION_FAILED = "failed"
VERIFICATION_PENDING = "pending"


@dataclass(frozen=True)
class DeliveryTarget:
    delivery_id: str
    deployment_url: Optional[str] = None
    repo_url: Optional[str] = None
    project_id: Optional[str] = None


@dataclass
class ProbeRunResult:
    evidence_ids: List[str] = field(default_factory=list)
    http_probe: Optional[HttpProbeResult] = None
    github_probe: Optional[GitHubContributorResult] = None
    job_id: Optional[str] = None

    @property
    def verification(self) -> "VerificationSummary":
        return summarize_delivery_verification(
            deployment_reachable=self.http_probe.reachable if self.http_probe else None,
            repo_exists=self.github_probe.repo_exists if self.github_probe else None,
            collaborator_confirmed=self.github_probe.is_contributor if self.github_probe else None,
        )

    def as_dict(self) -> Dict[str, Any]:
        summary = self.verification
        return {
            "evidence_ids": list(self.evidence_ids),
            "evidence_count": len(self.evidence_ids),
            "http_probe": self.http_probe.as_payload() if self.http_probe else None,
            "github_probe": self.github_probe.as_payload() if self.github_probe else None,
            "job_id": self.job_id,
            "verification": {
                "status": summary.status,
                "checks_passed": summary.checks_passed,
                "checks_total": summary.checks_total,
                "strength": summary.strength,
            },
        }


@dataclass(frozen=True)
class VerificationSummary:
    status: str
    checks_passed: int
    checks_total: int
    strength: Optional[float]


def summarize_delivery_verification(
    deployment_reachable: Optional[bool] = None,
    repo_exists: Optional[bool] = None,
    collaborator_confirmed: Optional[bool] = None,
) -> VerificationSummary:
    """Reduce tri-state checks to one status.

    None means the check was not run; such checks are left out of the
    totals instead of counting as failures.
    """
    checks = [c for c in (deployment_reachable, repo_exists, collaborator_confirmed) if c is not None]
    if not checks:
        return VerificationSummary(status=VERIFICATION_PENDING, checks_passed=0, checks_total=0, strength=None)

    passed = sum(1 for c in checks if c)
    total = len(checks)
    if passed == total:
        status = VERIFICATION_VERIFIED
    elif passed > 0:
        status = VERIFICATION_PARTIAL
    else:
        status = VERIFICATION_FAILED
    return VerificationSummary(status=status, checks_passed=passed, checks_total=total, strength=passed / total)


async def _ingest(
    ledger: EvidenceLedger,
    out: ProbeRunResult,
    builder_id: str,
    target: DeliveryTarget,
    evidence_type: EvidenceType,
    source: EvidenceSource,
    payload: Mapping[str, Any],
    confidence: float,
) -> Optional[ScoreEvidence]:
    evidence = await ledger.ingest(
        EvidenceParams(
            builder_id=builder_id,
            type=evidence_type,
            source=source,
            payload=dict(payload),
            confidence=confidence,
            project_id=target.project_id,
            delivery_id=target.delivery_id,
        )
    )
    if evidence is not None:
        out.evidence_ids.append(evidence.id)
    return evidence


async def run_probes_for_delivery(
    ledger: EvidenceLedger,
    queue: RecomputeQueue,
    builder_id: str,
    target: DeliveryTarget,
    github_username: Optional[str] = None,
    *,
    settings: Optional[ProbeSettings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ProbeRunResult:
    settings = settings or ProbeSettings()
    out = ProbeRunResult()

    async with client_scope(client, timeout=settings.http_timeout_seconds, user_agent=settings.user_agent) as http:
        if target.deployment_url:
            http_result = await probe_deployment(
                target.deployment_url,
                client=http,
                timeout=settings.http_timeout_seconds,
                body_timeout=settings.body_timeout_seconds,
                user_agent=settings.user_agent,
            )
            out.http_probe = http_result
            await _ingest(
                ledger,
                out,
                builder_id,
                target,
                EvidenceType.DEPLOYMENT_HTTP_PROBE_OK if http_result.reachable else EvidenceType.DEPLOYMENT_HTTP_PROBE_FAIL,
                EvidenceSource.PROBE_HTTP,
                http_result.as_payload(),
                http_result.confidence,
            )

        if target.repo_url and github_username:
            gh_result = await probe_github_contributor(
                target.repo_url,
                github_username,
                token=settings.github_token,
                client=http,
                api_base=settings.github_api_base,
                timeout=settings.http_timeout_seconds,
                user_agent=settings.user_agent,
            )
            out.github_probe = gh_result
            await _ingest(
                ledger,
                out,
                builder_id,
                target,
                EvidenceType.GITHUB_CONTRIBUTOR_VERIFIED if gh_result.is_contributor else EvidenceType.GITHUB_CONTRIBUTOR_FAIL,
                EvidenceSource.PROBE_GITHUB,
                gh_result.as_payload(),
                gh_result.confidence,
            )

            http_ok = bool(out.http_probe and out.http_probe.reachable)
            if gh_result.is_contributor and http_ok:
                await _ingest(
                    ledger,
                    out,
                    builder_id,
                    target,
                    EvidenceType.OWNERSHIP_VERIFIED_STRONG,
                    EvidenceSource.SYSTEM,
                    OwnershipPayload(github_verified=True, deployment_reachable=True),
                    OWNERSHIP_STRONG_CONFIDENCE,
                )
            elif gh_result.is_contributor or http_ok:
                await _ingest(
                    ledger,
                    out,
                    builder_id,
                    target,
                    EvidenceType.OWNERSHIP_VERIFIED_WEAK,
                    EvidenceSource.SYSTEM,
                    OwnershipPayload(github_verified=gh_result.is_contributor, deployment_reachable=http_ok),
                    OWNERSHIP_WEAK_CONFIDENCE,
                )

            if gh_result.repo_exists and gh_result.languages:
                await _ingest(
                    ledger,
                    out,
                    builder_id,
                    target,
                    EvidenceType.REPO_STACK_INFERRED,
                    EvidenceSource.PROBE_GITHUB,
                    gh_result.stack_payload(),
                    REPO_STACK_CONFIDENCE,
                )

    if out.evidence_ids:
        job = await queue.enqueue(builder_id, RecomputeTrigger.PROBE_RESULT, out.evidence_ids[0])
        out.job_id = job.id

    logger.info(
        f"Probes for delivery {target.delivery_id} ({builder_id}): "
        f"{len(out.evidence_ids)} new evidence, status={out.verification.status}"
    )
    return out


async def ingest_stack_inference(
    ledger: EvidenceLedger,
    builder_id: str,
    dependencies: Mapping[str, Any],
    *,
    project_id: Optional[str] = None,
    delivery_id: Optional[str] = None,
) -> Optional[ScoreEvidence]:
    """Record SKILL_EVIDENCE_INFERRED for a dependency manifest.

    Nothing is recorded when no category was detected.
    """
    result = infer_stack_from_dependencies(dependencies)
    if not result.detected_stack:
        return None
    return await ledger.ingest(
        EvidenceParams(
            builder_id=builder_id,
            type=EvidenceType.SKILL_EVIDENCE_INFERRED,
            source=EvidenceSource.PROBE_STACK,
            payload=result.as_payload(),
            confidence=result.confidence,
            project_id=project_id,
            delivery_id=delivery_id,
        )
    )


__all__ = [
    "DeliveryTarget",
    "ProbeRunResult",
    "VerificationSummary",
    "summarize_delivery_verification",
    "run_probes_for_delivery",
    "ingest_stack_inference",
]
