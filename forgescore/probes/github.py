"""GitHub contributor probe.

Resolves owner/repo from a URL and, in one pass over the REST API, checks
whether a user is a contributor and harvests the language breakdown and
CI / test / Docker markers in the repository root.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from forgescore.scoring.types import GitHubProbePayload, RepoStackPayload

from .client import DEFAULT_USER_AGENT, PROBE_ERRORS, client_scope, describe_error

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.github.com"

_REPO_URL_RE = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s?#]+)", re.IGNORECASE)

CI_MARKERS = frozenset({".github", ".gitlab-ci.yml", "jenkinsfile"})
TEST_MARKERS = frozenset({"jest.config.js", "vitest.config.ts", "pytest.ini"})
DOCKER_MARKERS = frozenset({"dockerfile", "docker-compose.yml"})

CONTRIBUTOR_CONFIDENCE_BASE = 0.5
CONTRIBUTOR_CONFIDENCE_PER_COMMIT = 0.05
CONTRIBUTOR_CONFIDENCE_MAX = 0.95
NOT_CONTRIBUTOR_CONFIDENCE = 0.1


@dataclass(frozen=True)
class GitHubContributorResult:
    repo_url: str
    username: str
    is_contributor: bool = False
    commit_count: int = 0
    repo_exists: bool = False
    languages: Dict[str, int] = field(default_factory=dict)
    has_ci: bool = False
    has_tests: bool = False
    has_dockerfile: bool = False
    error: Optional[str] = None

    @property
    def confidence(self) -> float:
        if not self.is_contributor:
            return NOT_CONTRIBUTOR_CONFIDENCE
        return min(
            CONTRIBUTOR_CONFIDENCE_MAX,
            CONTRIBUTOR_CONFIDENCE_BASE + CONTRIBUTOR_CONFIDENCE_PER_COMMIT * self.commit_count,
        )

    def as_payload(self) -> GitHubProbePayload:
        return {
            "repo_url": self.repo_url,
            "username": self.username,
            "is_contributor": self.is_contributor,
            "commit_count": self.commit_count,
            "repo_exists": self.repo_exists,
            "languages": dict(self.languages),
            "has_ci": self.has_ci,
            "has_tests": self.has_tests,
            "has_dockerfile": self.has_dockerfile,
            "error": self.error,
        }

    def stack_payload(self) -> RepoStackPayload:
        return {
            "languages": dict(self.languages),
            "has_ci": self.has_ci,
            "has_tests": self.has_tests,
            "has_dockerfile": self.has_dockerfile,
        }


def parse_repo_url(repo_url: str) -> Optional[Tuple[str, str]]:
    """(owner, repo) from a GitHub URL, or None if it is not one."""
    match = _REPO_URL_RE.search(repo_url or "")
    if not match:
        return None
    owner, repo = match.group(1), match.group(2)
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not owner or not repo:
        return None
    return owner, repo


def detect_repo_markers(file_names: List[str]) -> Dict[str, bool]:
    names = [n.lower() for n in file_names if n]
    return {
        "has_ci": any(n in CI_MARKERS for n in names),
        "has_tests": any("test" in n or n in TEST_MARKERS for n in names),
        "has_dockerfile": any(n in DOCKER_MARKERS for n in names),
    }


def _count(value: Any) -> Optional[int]:
    """Non-negative int from an API count field, or None when it is not one."""
    if isinstance(value, bool):
        return None
    try:
        return max(0, int(value))
    except (TypeError, ValueError, OverflowError):
        return None


async def _get_json(client: httpx.AsyncClient, url: str, headers: Dict[str, str], default: Any) -> Any:
    response = await client.get(url, headers=headers)
    if not response.is_success:
        return default
    try:
        return response.json()
    except ValueError:
        return default


async def probe_github_contributor(
    repo_url: str,
    username: str,
    *,
    token: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
    api_base: str = DEFAULT_API_BASE,
    timeout: float = 10.0,
    user_agent: str = DEFAULT_USER_AGENT,
) -> GitHubContributorResult:
    parsed = parse_repo_url(repo_url)
    if parsed is None:
        return GitHubContributorResult(repo_url=repo_url, username=username, error="Invalid GitHub URL")
    owner, repo = parsed

    headers = {"User-Agent": user_agent, "Accept": "application/vnd.github+json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    base = f"{api_base.rstrip('/')}/repos/{owner}/{repo}"

    try:
        async with client_scope(client, timeout=timeout, user_agent=user_agent) as http:
            repo_res = await http.get(base, headers=headers)
            if not repo_res.is_success:
                return GitHubContributorResult(
                    repo_url=repo_url,
                    username=username,
                    error=f"Repo not found: {repo_res.status_code}",
                )

            contributors, languages, contents = await asyncio.gather(
                _get_json(http, f"{base}/contributors?per_page=100", headers, []),
                _get_json(http, f"{base}/languages", headers, {}),
                _get_json(http, f"{base}/contents", headers, []),
            )
    except PROBE_ERRORS as e:
        logger.warning(f"GitHub probe failed for {repo_url}: {describe_error(e)}")
        return GitHubContributorResult(repo_url=repo_url, username=username, error=describe_error(e))

    if not isinstance(contributors, list):
        contributors = []
    if not isinstance(languages, dict):
        languages = {}
    if not isinstance(contents, list):
        contents = []

    wanted = (username or "").lower()
    match = next(
        (c for c in contributors if isinstance(c, dict) and str(c.get("login") or "").lower() == wanted),
        None,
    )
    markers = detect_repo_markers([str(f.get("name") or "") for f in contents if isinstance(f, dict)])
    language_bytes: Dict[str, int] = {}
    for name, size in languages.items():
        n = _count(size)
        if n is not None:
            language_bytes[str(name)] = n

    return GitHubContributorResult(
        repo_url=repo_url,
        username=username,
        is_contributor=bool(wanted) and match is not None,
        commit_count=(_count(match.get("contributions")) or 0) if match else 0,
        repo_exists=True,
        languages=language_bytes,
        error=None,
        **markers,
    )


__all__ = [
    "GitHubContributorResult",
    "parse_repo_url",
    "detect_repo_markers",
    "probe_github_contributor",
]
