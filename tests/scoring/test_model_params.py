"""Tests for scoring/model_params.py."""

import json

import pytest
from pydantic import ValidationError

from forgescore.scoring.model_params import (
    DEFAULT_MODEL,
    ModelCaps,
    ModelWeights,
    ScoringModelVersion,
    get_default_model,
    model_from_row,
)


class TestDefaults:
    """Default hyperparameters."""

    def test_weights_sum_to_one(self):
        w = ModelWeights()
        assert w.ec_weight + w.aoi_weight + w.rc_weight + w.lpi_weight == pytest.approx(1.0)

    def test_default_caps(self):
        caps = ModelCaps()
        assert caps.normal_delta_max == 35
        assert caps.milestone_delta_max == 70
        assert caps.tier_800_min_months == 4
        assert caps.tier_900_min_months == 9
        assert caps.inactivity_decay_start_days == 60
        assert caps.bcm_min == pytest.approx(0.60)
        assert caps.bcm_max == pytest.approx(1.05)

    def test_default_model(self):
        assert get_default_model() is DEFAULT_MODEL
        assert DEFAULT_MODEL.version == "v3.0"
        assert DEFAULT_MODEL.is_active

    def test_frozen(self):
        with pytest.raises(ValidationError):
            DEFAULT_MODEL.caps.normal_delta_max = 999

    def test_bounds_enforced(self):
        with pytest.raises(ValidationError):
            ModelCaps(normal_delta_max=0)
        with pytest.raises(ValidationError):
            ModelWeights(ec_weight=1.5)


class TestModelFromRow:
    """Tests for model_from_row."""

    def test_missing_row_is_default(self):
        assert model_from_row(None) is DEFAULT_MODEL

    def test_json_encoded_columns(self):
        row = {
            "version": "v3.2",
            "weights": json.dumps({"ec_weight": 0.4, "aoi_weight": 0.1}),
            "caps": json.dumps({"normal_delta_max": 20}),
            "tier_config": json.dumps({}),
            "effective_from": None,
            "deprecated_at": None,
        }
        model = model_from_row(row)
        assert model.version == "v3.2"
        assert model.weights.ec_weight == pytest.approx(0.4)
        assert model.weights.rc_weight == pytest.approx(0.30)
        assert model.caps.normal_delta_max == 20
        assert model.caps.milestone_delta_max == 70

    def test_decoded_columns(self):
        row = {"version": "v3.3", "weights": {}, "caps": {"bcm_min": 0.5}, "tier_config": None}
        model = model_from_row(row)
        assert model.caps.bcm_min == pytest.approx(0.5)

    def test_invalid_row_degrades_to_default(self, caplog):
        row = {"version": "broken", "weights": json.dumps({"ec_weight": 7}), "caps": "{}", "tier_config": "{}"}
        assert model_from_row(row) is DEFAULT_MODEL
        assert "broken" in caplog.text

    def test_row_round_trips_version(self):
        model = ScoringModelVersion(version="v9")
        row = {
            "version": model.version,
            "weights": model.weights.model_dump_json(),
            "caps": model.caps.model_dump_json(),
            "tier_config": model.tier_config.model_dump_json(),
        }
        assert model_from_row(row) == model
