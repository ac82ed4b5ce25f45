"""
Tests for domain models in `dosecore/domain/models.py`.

Covers:
- PK parameter domain checks raising InvalidParameterError with the field name
- Derived elimination rate
- Immutability of value types
- Range validation of mood and dose inputs
"""

import math
from datetime import time

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from dosecore.domain.errors import DoseCoreError, InvalidParameterError
from dosecore.domain.models import (
    DoseEvent,
    Medication,
    MedicationPK,
    MoodEntry,
    SignificanceTier,
    TTestResult,
)

VALID_PK = {
    "half_life_hours": 24.0,
    "volume_of_distribution": 20.0,
    "bioavailability": 0.44,
    "absorption_rate_ka": 0.5,
}


class TestMedicationPK:
    """PK parameters are validated, never clamped."""

    def test_valid_parameters_are_accepted(self) -> None:
        pk = MedicationPK(**VALID_PK)
        assert pk.half_life_hours == 24.0
        assert pk.bioavailability == 0.44

    def test_elimination_rate_is_ln2_over_half_life(self) -> None:
        pk = MedicationPK(**VALID_PK)
        assert pk.elimination_rate_ke == pytest.approx(math.log(2) / 24.0)
        assert pk.elimination_rate_ke == pytest.approx(0.02888, rel=1e-3)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("half_life_hours", 0.0),
            ("half_life_hours", -4.0),
            ("volume_of_distribution", 0.0),
            ("bioavailability", 0.0),
            ("bioavailability", 1.5),
            ("absorption_rate_ka", -0.1),
            ("half_life_hours", math.nan),
            ("absorption_rate_ka", math.inf),
        ],
    )
    def test_out_of_domain_value_names_the_field(self, field: str, value: float) -> None:
        with pytest.raises(InvalidParameterError) as exc_info:
            MedicationPK(**{**VALID_PK, field: value})

        assert exc_info.value.field == field
        assert exc_info.value.code == "invalid_parameter"
        assert field in str(exc_info.value)

    def test_bioavailability_of_exactly_one_is_allowed(self) -> None:
        pk = MedicationPK(**{**VALID_PK, "bioavailability": 1.0})
        assert pk.bioavailability == 1.0

    def test_invalid_parameter_error_is_a_dosecore_error(self) -> None:
        assert issubclass(InvalidParameterError, DoseCoreError)
        assert not issubclass(InvalidParameterError, ValueError)

    @given(
        half_life=st.floats(min_value=0.1, max_value=500.0),
        bioavailability=st.floats(min_value=0.01, max_value=1.0),
    )
    def test_any_in_domain_parameters_validate(
        self, half_life: float, bioavailability: float
    ) -> None:
        pk = MedicationPK(
            half_life_hours=half_life,
            volume_of_distribution=5.0,
            bioavailability=bioavailability,
            absorption_rate_ka=1.0,
        )
        assert pk.elimination_rate_ke > 0

    def test_pk_is_immutable(self) -> None:
        pk = MedicationPK(**VALID_PK)
        with pytest.raises(ValidationError, match="frozen"):
            pk.half_life_hours = 12.0  # type: ignore[misc]


class TestMedication:
    def test_defaults(self) -> None:
        med = Medication(id="sertraline", name="Sertraline", pk=MedicationPK(**VALID_PK))
        assert med.category == "Other"
        assert med.expected_doses_per_day is None
        assert med.scheduled_time is None
        assert not med.is_chronic

    def test_chronic_categories(self) -> None:
        med = Medication(
            id="sertraline",
            name="Sertraline",
            pk=MedicationPK(**VALID_PK),
            category="SSRI",
            scheduled_time=time(8, 0),
        )
        assert med.is_chronic

    def test_empty_id_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Medication(id="", name="x", pk=MedicationPK(**VALID_PK))


class TestEvents:
    def test_dose_amount_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            DoseEvent(medication_id="m", timestamp_ms=0.0, amount_mg=0.0)

    def test_mood_score_range(self) -> None:
        with pytest.raises(ValidationError):
            MoodEntry(timestamp_ms=0.0, mood_score=11.0)

    def test_secondary_mood_dimensions_are_nullable(self) -> None:
        entry = MoodEntry(timestamp_ms=0.0, mood_score=6.0, energy_level=4.0)
        assert entry.anxiety_level is None
        assert entry.focus_level is None
        assert entry.energy_level == 4.0

    def test_dimension_lookup(self) -> None:
        entry = MoodEntry(timestamp_ms=0.0, mood_score=6.0, anxiety_level=2.0)
        assert entry.dimension("mood") == 6.0
        assert entry.dimension("anxiety") == 2.0
        assert entry.dimension("focus") is None

    def test_dose_event_is_immutable(self) -> None:
        dose = DoseEvent(medication_id="m", timestamp_ms=0.0, amount_mg=50.0)
        with pytest.raises(ValidationError, match="frozen"):
            dose.amount_mg = 100.0  # type: ignore[misc]


def test_ttest_significant_only_for_strong_and_moderate() -> None:
    def build(tier: SignificanceTier) -> TTestResult:
        return TTestResult(
            t_statistic=3.0,
            degrees_of_freedom=10.0,
            p_value=0.01,
            effect_size=0.8,
            significance=tier,
        )

    assert build(SignificanceTier.STRONG).significant
    assert build(SignificanceTier.MODERATE).significant
    assert not build(SignificanceTier.WEAK).significant
    assert not build(SignificanceTier.NONE).significant
