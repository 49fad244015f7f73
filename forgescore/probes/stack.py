"""Stack-depth inference from a dependency manifest.

Dependency names are matched against known libraries for each capability
category. Confidence grows with the number of categories detected and
reaches 1.0 at four.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

from forgescore.scoring.types import StackInferencePayload

FULL_CONFIDENCE_CATEGORIES = 4

STACK_PATTERNS: Dict[str, re.Pattern[str]] = {
    "auth": re.compile(r"passport|next-auth|@auth|jsonwebtoken|bcrypt|jose|oauth|clerk|lucia", re.I),
    "database": re.compile(
        r"prisma|drizzle|typeorm|sequelize|knex|mongoose|@supabase|pg\b|mysql2|better-sqlite|redis|ioredis",
        re.I,
    ),
    "api": re.compile(r"express|fastify|hono|@trpc|graphql|@nestjs|koa", re.I),
    "external_integrations": re.compile(
        r"stripe|@sendgrid|twilio|@aws-sdk|@google-cloud|resend|postmark|pusher|@upstash", re.I
    ),
    "payments": re.compile(r"stripe|@lemonsqueezy|paddle|paypal", re.I),
    "background_jobs": re.compile(r"bull|bullmq|celery|@temporalio|inngest|trigger\.dev|node-cron", re.I),
    "testing": re.compile(r"vitest|jest|@testing-library|playwright|cypress|mocha|pytest|unittest", re.I),
    "ci": re.compile(r"husky|lint-staged|@commitlint", re.I),
}

_REQUIREMENT_NAME_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._\-\[\]]*)")


@dataclass(frozen=True)
class StackInferenceResult:
    detected_stack: List[str]
    depth_flags: Dict[str, bool]
    confidence: float

    def as_payload(self) -> StackInferencePayload:
        return {
            "detected_stack": list(self.detected_stack),
            "depth_flags": dict(self.depth_flags),
        }


def infer_stack_from_dependencies(deps: Mapping[str, Any]) -> StackInferenceResult:
    """Detect capability categories from dependency names (versions ignored)."""
    all_deps = " ".join(str(name) for name in deps.keys())
    detected: List[str] = []
    flags = {f"has_{category}": False for category in STACK_PATTERNS}

    for category, pattern in STACK_PATTERNS.items():
        if pattern.search(all_deps):
            detected.append(category)
            flags[f"has_{category}"] = True

    confidence = min(1.0, len(detected) / FULL_CONFIDENCE_CATEGORIES)
    return StackInferenceResult(detected_stack=detected, depth_flags=flags, confidence=confidence)


def dependencies_from_package_json(manifest: Mapping[str, Any]) -> Dict[str, str]:
    """Merge runtime and dev dependencies of a parsed package.json."""
    deps: Dict[str, str] = {}
    for section in ("dependencies", "devDependencies"):
        values = manifest.get(section) or {}
        if isinstance(values, Mapping):
            deps.update({str(k): str(v) for k, v in values.items()})
    return deps


def dependencies_from_requirements(text: str) -> Dict[str, str]:
    """Package names from requirements.txt text; comments and options are skipped."""
    deps: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.split("#", 1)[0].strip()
        if not line or line.startswith("-"):
            continue
        match = _REQUIREMENT_NAME_RE.match(line)
        if match:
            name = match.group(1).split("[", 1)[0]
            deps[name] = line[len(match.group(1)):].strip()
    return deps


__all__ = [
    "STACK_PATTERNS",
    "StackInferenceResult",
    "infer_stack_from_dependencies",
    "dependencies_from_package_json",
    "dependencies_from_requirements",
]
