"""Unit tests for score aggregation and labelling."""
import pytest
from pydantic import ValidationError

from app.schemas.match import DIMENSIONS, CompatibilityLabel
from app.services.aggregator import Aggregator, LabelThresholds, ScoringWeights


def _breakdown(value: float) -> dict:
    return {name: value for name in DIMENSIONS}


@pytest.fixture
def aggregator():
    return Aggregator()


class TestScoringWeights:
    """Tests for the weight value object."""

    def test_defaults_sum_to_one(self):
        weights = ScoringWeights()
        assert sum(weights.as_dict().values()) == pytest.approx(1.0)

    def test_default_values(self):
        assert ScoringWeights().as_dict() == {
            "age": 0.10,
            "interests": 0.15,
            "availability": 0.15,
            "occupation": 0.10,
            "work_date_ratio": 0.15,
            "location": 0.15,
            "work_style": 0.20,
        }

    def test_rejects_weights_not_summing_to_one(self):
        with pytest.raises(ValidationError):
            ScoringWeights(work_style=0.5)

    def test_rejects_negative_weight(self):
        with pytest.raises(ValidationError):
            ScoringWeights(age=-0.1, work_style=0.4)

    def test_is_immutable(self):
        weights = ScoringWeights()
        with pytest.raises(ValidationError):
            weights.age = 0.5


class TestLabelThresholds:
    def test_must_be_strictly_decreasing(self):
        with pytest.raises(ValidationError):
            LabelThresholds(excellent=70, good=70, fair=55)


class TestTotalScore:
    """Tests for the weighted 0-100 total."""

    def test_all_perfect(self, aggregator):
        assert aggregator.total_score(_breakdown(1.0)) == 100

    def test_all_zero(self, aggregator):
        assert aggregator.total_score(_breakdown(0.0)) == 0

    def test_weighted_sum(self, aggregator):
        breakdown = _breakdown(0.0)
        breakdown["work_style"] = 1.0
        breakdown["age"] = 0.5
        # 0.20 * 1.0 + 0.10 * 0.5 = 0.25
        assert aggregator.total_score(breakdown) == 25

    @pytest.mark.parametrize("value, expected", [(0.125, 13), (0.625, 63), (0.375, 38)])
    def test_halves_round_up(self, value, expected):
        only_age = ScoringWeights(
            age=1.0,
            interests=0.0,
            availability=0.0,
            occupation=0.0,
            work_date_ratio=0.0,
            location=0.0,
            work_style=0.0,
        )
        breakdown = _breakdown(0.0)
        breakdown["age"] = value
        assert Aggregator(weights=only_age).total_score(breakdown) == expected

    def test_result_is_int(self, aggregator):
        assert isinstance(aggregator.total_score(_breakdown(0.77)), int)

    def test_missing_dimension_raises(self, aggregator):
        breakdown = _breakdown(1.0)
        del breakdown["location"]
        with pytest.raises(KeyError):
            aggregator.total_score(breakdown)

    def test_extra_keys_ignored(self, aggregator):
        breakdown = _breakdown(1.0)
        breakdown["astrology"] = 0.0
        assert aggregator.total_score(breakdown) == 100


class TestLabel:
    """Tests for total-to-label mapping."""

    @pytest.mark.parametrize(
        "total, expected",
        [
            (100, CompatibilityLabel.EXCELLENT),
            (85, CompatibilityLabel.EXCELLENT),
            (84, CompatibilityLabel.GOOD),
            (70, CompatibilityLabel.GOOD),
            (69, CompatibilityLabel.FAIR),
            (55, CompatibilityLabel.FAIR),
            (54, CompatibilityLabel.POOR),
            (0, CompatibilityLabel.POOR),
        ],
    )
    def test_boundaries(self, aggregator, total, expected):
        assert aggregator.label(total) == expected

    def test_custom_thresholds(self):
        aggregator = Aggregator(thresholds=LabelThresholds(excellent=90, good=60, fair=30))
        assert aggregator.label(85) == CompatibilityLabel.GOOD
        assert aggregator.label(30) == CompatibilityLabel.FAIR

    def test_label_values_serialise_as_words(self):
        assert CompatibilityLabel.EXCELLENT.value == "Excellent"
        assert CompatibilityLabel.POOR.value == "Poor"


class TestFromSettings:
    def test_uses_configured_weights(self):
        aggregator = Aggregator.from_settings()
        assert aggregator.weights == ScoringWeights()
        assert aggregator.thresholds == LabelThresholds()
