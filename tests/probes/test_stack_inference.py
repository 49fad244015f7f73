"""Tests for probes/stack.py."""

import pytest

from forgescore.probes.stack import (
    STACK_PATTERNS,
    dependencies_from_package_json,
    dependencies_from_requirements,
    infer_stack_from_dependencies,
)


class TestInferStack:
    """Tests for infer_stack_from_dependencies."""

    def test_empty(self):
        result = infer_stack_from_dependencies({})
        assert result.detected_stack == []
        assert result.confidence == 0.0
        assert set(result.depth_flags) == {f"has_{c}" for c in STACK_PATTERNS}
        assert not any(result.depth_flags.values())

    def test_typical_saas(self):
        result = infer_stack_from_dependencies(
            {"next-auth": "^4", "prisma": "^5", "express": "^4", "stripe": "^14"}
        )
        assert result.detected_stack == ["auth", "database", "api", "external_integrations", "payments"]
        assert result.depth_flags["has_payments"]
        assert not result.depth_flags["has_testing"]
        assert result.confidence == 1.0

    def test_partial_confidence(self):
        result = infer_stack_from_dependencies({"vitest": "1.0", "husky": "9"})
        assert result.detected_stack == ["testing", "ci"]
        assert result.confidence == pytest.approx(0.5)

    def test_case_insensitive(self):
        assert infer_stack_from_dependencies({"Celery": "5"}).detected_stack == ["background_jobs"]

    def test_payload(self):
        payload = infer_stack_from_dependencies({"jest": "29"}).as_payload()
        assert payload["detected_stack"] == ["testing"]
        assert payload["depth_flags"]["has_testing"] is True


class TestManifestParsing:
    def test_package_json_merges_dev(self):
        deps = dependencies_from_package_json(
            {"dependencies": {"express": "^4"}, "devDependencies": {"jest": "^29"}, "scripts": {"x": "y"}}
        )
        assert deps == {"express": "^4", "jest": "^29"}

    def test_requirements(self):
        text = "\n".join(
            [
                "# pinned",
                "celery[redis]==5.3.6",
                "-r base.txt",
                "",
                "pytest>=8  # tests",
                "stripe",
            ]
        )
        deps = dependencies_from_requirements(text)
        assert deps == {"celery": "==5.3.6", "pytest": ">=8", "stripe": ""}
