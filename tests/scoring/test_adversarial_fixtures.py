"""Scenario tests: honest builders should outscore gamed or unreliable profiles."""

import pytest

from forgescore.scoring.engine import ComputeV3Input, compute_forge_score_v3
from forgescore.scoring.types import (
    FLAG_ATTESTATION_RING_DETECTED,
    FLAG_HIGH_BURSTINESS,
    FLAG_TEMPLATE_CLONE_DETECTED,
    EvidenceType,
)


def _honest_rows(make_evidence, *, reliable=True):
    E = EvidenceType
    rows = []

    def add(kind, days, payload=None):
        rows.append(make_evidence(kind, days_ago=days, payload=payload))

    for days in (10, 40, 80, 120):
        add(E.DELIVERY_VERIFIED, days)
    for days in (30, 90):
        add(E.DELIVERY_SUSTAINED, days)
    for days in (11, 41, 81, 121):
        add(E.DEPLOYMENT_HTTP_PROBE_OK, days)
    for days in (12, 42, 82, 122):
        add(E.GITHUB_CONTRIBUTOR_VERIFIED, days)
    for days, lang in ((13, "Python"), (43, "TypeScript"), (83, "Go"), (123, "Rust")):
        add(
            E.REPO_STACK_INFERRED,
            days,
            {"languages": {lang: 100}, "has_ci": True, "has_tests": True, "has_dockerfile": lang == "Go"},
        )
    for days in (14, 44, 84):
        add(E.OWNERSHIP_VERIFIED_STRONG, days)
    for days in (150, 100, 60):
        add(E.TEAM_JOINED, days)
    if reliable:
        for days in (20, 70, 110):
            add(E.PROJECT_COMPLETED, days)
    else:
        add(E.TEAM_DEPARTED, 20, {"ghosted": True})
        add(E.TEAM_DEPARTED, 70, {"ghosted": True})
        add(E.PROJECT_ABANDONED, 110)
        add(E.NO_SHOW_FLAG, 50)
    add(E.TEAM_ATTESTATION, 25, {"attester_id": "peer-1"})
    add(E.TEAM_ATTESTATION, 75, {"attester_id": "peer-2"})
    for days in (35, 95):
        add(E.ARCH_DECISION_LOG, days)
    for days in (5, 15, 45, 65, 105):
        add(E.PR_REVIEW_ACTIVITY, days)
    for week in range(12):
        add(E.CONSISTENCY_ACTIVE_WEEK, 1 + 7 * week)
    return rows


def _score(rows, counts_of, now, tenure_days, **kwargs):
    return compute_forge_score_v3(
        ComputeV3Input(
            builder_id="builder-1",
            evidence=rows,
            counts=counts_of(rows),
            tenure_days=tenure_days,
            as_of=now,
            **kwargs,
        )
    )


@pytest.fixture
def honest(make_evidence, counts_of, now):
    return _score(_honest_rows(make_evidence), counts_of, now, tenure_days=180)


class TestHonestBuilder:
    """A steady six-month builder with verified work."""

    def test_scores_high_but_tenure_gated(self, honest):
        # raw mapping lands above 900; six months of tenure holds it under the 900 tier
        assert honest.score == 899
        assert honest.breakdown.raw_3digit == 899

    def test_no_gaming_flags(self, honest):
        assert FLAG_HIGH_BURSTINESS not in honest.anomaly_flags
        assert FLAG_TEMPLATE_CLONE_DETECTED not in honest.anomaly_flags
        assert FLAG_ATTESTATION_RING_DETECTED not in honest.anomaly_flags

    def test_long_tenure_unlocks_top_tier(self, make_evidence, counts_of, now):
        veteran = _score(_honest_rows(make_evidence), counts_of, now, tenure_days=400)
        assert veteran.score > 900


class TestSpammer:
    """A dormant account that dumps cloned repos in one sitting."""

    @pytest.fixture
    def spammer(self, make_evidence, counts_of, now):
        rows = [make_evidence(EvidenceType.PR_REVIEW_ACTIVITY, days_ago=30)]
        rows += [
            make_evidence(
                EvidenceType.REPO_STACK_INFERRED,
                days_ago=0.01 * i,
                payload={"languages": {"JavaScript": 100}, "has_ci": False, "has_tests": False},
            )
            for i in range(40)
        ]
        return _score(rows, counts_of, now, tenure_days=30)

    def test_flags_raised(self, spammer):
        assert FLAG_HIGH_BURSTINESS in spammer.anomaly_flags
        assert FLAG_TEMPLATE_CLONE_DETECTED in spammer.anomaly_flags
        assert spammer.breakdown.bcm.multiplier < 1.0

    def test_scores_low(self, spammer, honest):
        assert spammer.score < 300
        assert honest.score - spammer.score > 500

    def test_twenty_deliveries_in_one_night(self, make_evidence, counts_of, now, honest):
        rows = [
            make_evidence(EvidenceType.DELIVERY_VERIFIED, days_ago=i / 24 / 4)
            for i in range(20)
        ]
        rows += [make_evidence(EvidenceType.DEPLOYMENT_HTTP_PROBE_FAIL, days_ago=0.1)]
        burst = _score(rows, counts_of, now, tenure_days=30)

        assert burst.breakdown.dimensions.lpi == 0
        assert honest.score > burst.score


class TestTemplateCloner:
    """Steady activity, but every repo is the same starter template."""

    @pytest.fixture
    def cloner(self, make_evidence, counts_of, now):
        rows = []
        for row in _honest_rows(make_evidence):
            if row.type == EvidenceType.REPO_STACK_INFERRED:
                row = make_evidence(
                    EvidenceType.REPO_STACK_INFERRED,
                    days_ago=(now - row.created_at).days,
                    payload={"languages": {"TypeScript": 100}, "has_ci": True, "has_tests": True},
                )
            rows.append(row)
        return _score(rows, counts_of, now, tenure_days=180)

    def test_clone_flagged(self, cloner):
        assert FLAG_TEMPLATE_CLONE_DETECTED in cloner.anomaly_flags
        assert cloner.breakdown.bcm.multiplier < 1.0

    def test_scores_below_honest(self, cloner, honest):
        assert cloner.breakdown.adjusted_composite < honest.breakdown.adjusted_composite
        assert cloner.score < honest.score


class TestGhoster:
    """Same output as the honest builder, but walks away from teams."""

    @pytest.fixture
    def ghoster(self, make_evidence, counts_of, now):
        return _score(_honest_rows(make_evidence, reliable=False), counts_of, now, tenure_days=180)

    def test_reliability_collapses(self, ghoster, honest):
        assert ghoster.breakdown.dimensions.rc < 20
        assert honest.breakdown.dimensions.rc > 80

    def test_large_gap(self, ghoster, honest):
        assert honest.score - ghoster.score > 100

    def test_no_shows_on_three_of_four_projects(self, make_evidence, counts_of, now, honest):
        E = EvidenceType
        rows = [make_evidence(E.DELIVERY_VERIFIED, days_ago=d) for d in (10, 45, 80, 115, 150)]
        rows += [make_evidence(E.DEPLOYMENT_HTTP_PROBE_OK, days_ago=d + 1) for d in (10, 45, 80)]
        rows += [make_evidence(E.GITHUB_CONTRIBUTOR_VERIFIED, days_ago=d + 2) for d in (10, 45, 80)]
        rows += [make_evidence(E.TEAM_JOINED, days_ago=d) for d in (20, 60, 100, 140)]
        rows += [make_evidence(E.PROJECT_COMPLETED, days_ago=120)]
        rows += [make_evidence(E.NO_SHOW_FLAG, days_ago=d) for d in (50, 90, 130)]
        no_show = _score(rows, counts_of, now, tenure_days=180)

        assert no_show.breakdown.dimensions.rc < 20
        assert honest.score - no_show.score >= 100


class TestAttestationRing:
    """Builders that vouch for each other in a closed loop."""

    def test_ring_lowers_score(self, make_evidence, counts_of, now, honest):
        rows = _honest_rows(make_evidence)
        given = [
            make_evidence(EvidenceType.TEAM_ATTESTATION, builder_id="peer-1", payload={"attester_id": "builder-1"}),
            make_evidence(EvidenceType.TEAM_ATTESTATION, builder_id="peer-2", payload={"attester_id": "builder-1"}),
        ]
        ringed = _score(rows, counts_of, now, tenure_days=180, attestations_for_builder=given)
        assert FLAG_ATTESTATION_RING_DETECTED in ringed.anomaly_flags
        assert ringed.score < honest.score

    def test_closed_group_of_five(self, make_evidence, counts_of, now):
        peers = [f"peer-{n}" for n in range(1, 6)]
        rows = [make_evidence(EvidenceType.DELIVERY_VERIFIED, days_ago=30)]
        rows += [
            make_evidence(EvidenceType.TEAM_ATTESTATION, days_ago=10 + n, payload={"attester_id": peer})
            for n, peer in enumerate(peers)
        ]
        given = [
            make_evidence(EvidenceType.TEAM_ATTESTATION, builder_id=peer, payload={"attester_id": "builder-1"})
            for peer in peers
        ]
        result = _score(rows, counts_of, now, tenure_days=180, attestations_for_builder=given)

        assert FLAG_ATTESTATION_RING_DETECTED in result.anomaly_flags
        assert result.breakdown.bcm.multiplier < 1.0


class TestInactiveBuilder:
    """A formerly active builder who stopped shipping."""

    def test_decay_applied(self, make_evidence, counts_of, now):
        rows = [
            make_evidence(EvidenceType.DELIVERY_VERIFIED, days_ago=160),
            make_evidence(EvidenceType.DEPLOYMENT_HTTP_PROBE_OK, days_ago=161),
            make_evidence(EvidenceType.TEAM_JOINED, days_ago=200),
            make_evidence(EvidenceType.PROJECT_COMPLETED, days_ago=170),
        ]
        result = _score(rows, counts_of, now, tenure_days=365)
        # 100 days past the 60-day threshold at 0.15/day
        assert result.breakdown.inactivity_decay_applied == 15
