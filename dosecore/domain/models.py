"""
Domain models for medication dosing, mood logging and derived analytics.

Every model is frozen: inputs are an immutable snapshot of the event log and
every derived value is recomputed on each call, never persisted.
"""

import math
from datetime import time
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dosecore.domain.errors import InvalidParameterError

CHRONIC_CATEGORIES = frozenset({"SSRI", "SNRI", "Mood Stabilizer", "Antipsychotic"})

MoodDimension = Literal["mood", "anxiety", "energy", "focus"]
MOOD_DIMENSIONS: tuple[MoodDimension, ...] = ("mood", "anxiety", "energy", "focus")


class SignificanceTier(str, Enum):
    """Combined p-value / effect-size strength of a statistical finding."""

    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"
    NONE = "none"


class MedicationPK(BaseModel):
    """One-compartment, first-order absorption parameters of a medication."""

    model_config = ConfigDict(frozen=True)

    half_life_hours: float
    volume_of_distribution: float = Field(description="Volume of distribution in L/kg")
    bioavailability: float = Field(description="Fraction F of the dose reaching circulation")
    absorption_rate_ka: float = Field(description="First-order absorption rate in 1/h")

    @model_validator(mode="after")
    def check_domain(self) -> "MedicationPK":
        for field in (
            "half_life_hours",
            "volume_of_distribution",
            "bioavailability",
            "absorption_rate_ka",
        ):
            value = getattr(self, field)
            if not math.isfinite(value) or value <= 0:
                raise InvalidParameterError(field, value, "must be a finite value > 0")
        if self.bioavailability > 1:
            raise InvalidParameterError("bioavailability", self.bioavailability, "must be <= 1")
        return self

    @property
    def elimination_rate_ke(self) -> float:
        """Ke = ln2 / half-life, in 1/h."""
        return math.log(2) / self.half_life_hours


class Medication(BaseModel):
    """A medication record as handed over by the persistence layer."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    pk: MedicationPK
    category: str = "Other"
    expected_doses_per_day: int | None = Field(
        default=None, ge=1, description="None falls back to the configured default"
    )
    scheduled_time: time | None = Field(
        default=None, description="Planned time of day for the daily dose"
    )

    @property
    def is_chronic(self) -> bool:
        return self.category in CHRONIC_CATEGORIES


class DoseEvent(BaseModel):
    """A single recorded dose."""

    model_config = ConfigDict(frozen=True)

    medication_id: str
    timestamp_ms: float
    amount_mg: float = Field(gt=0.0)


class MoodEntry(BaseModel):
    """A mood log entry; secondary dimensions are explicitly nullable."""

    model_config = ConfigDict(frozen=True)

    timestamp_ms: float
    mood_score: float = Field(ge=0.0, le=10.0)
    anxiety_level: float | None = Field(default=None, ge=0.0, le=10.0)
    energy_level: float | None = Field(default=None, ge=0.0, le=10.0)
    focus_level: float | None = Field(default=None, ge=0.0, le=10.0)

    def dimension(self, name: MoodDimension) -> float | None:
        """Value of one mood dimension; "mood" is the always-present score."""
        if name == "mood":
            return self.mood_score
        return getattr(self, f"{name}_level")


class ConcentrationSample(BaseModel):
    """Plasma concentration (ng/mL) at one instant."""

    model_config = ConfigDict(frozen=True)

    time_ms: float
    concentration: float = Field(ge=0.0)


class CorrelationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    r: float = Field(ge=-1.0, le=1.0)
    p_value: float = Field(ge=0.0, le=1.0)
    t_statistic: float = 0.0
    sample_size: int = Field(ge=0)
    significance: SignificanceTier
    method: Literal["pearson", "spearman"] = "pearson"


class TTestResult(BaseModel):
    """Welch two-sample t-test with Cohen's d as effect size."""

    model_config = ConfigDict(frozen=True)

    t_statistic: float
    degrees_of_freedom: float = Field(ge=0.0)
    p_value: float = Field(ge=0.0, le=1.0)
    effect_size: float
    significance: SignificanceTier

    @property
    def significant(self) -> bool:
        return self.significance in (SignificanceTier.STRONG, SignificanceTier.MODERATE)


class DescriptiveStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int
    mean: float
    median: float
    std_dev: float
    variance: float
    minimum: float
    maximum: float
    q1: float
    q3: float


class LaggedCorrelation(BaseModel):
    model_config = ConfigDict(frozen=True)

    lag: int
    correlation: float
    sample_size: int
    p_value: float
    significance: SignificanceTier


class AnalysisWindow(BaseModel):
    """One fixed-length slice of the dosing timeline."""

    model_config = ConfigDict(frozen=True)

    start_ms: float
    end_ms: float
    concentration_mean: float
    cv: float = Field(ge=0.0)
    mood_mean: float | None = None
    mood_count: int = 0
    is_stable: bool = False


class VariabilityResult(BaseModel):
    """Mood under stable vs. varying concentration levels."""

    model_config = ConfigDict(frozen=True)

    medication_id: str
    medication_name: str
    window_days: int
    total_windows: int
    stable_windows: int
    varying_windows: int
    median_cv: float
    stable_mood_mean: float
    varying_mood_mean: float
    mood_difference: float
    cv_mood_correlation: CorrelationResult
    t_test: TTestResult
    significance: SignificanceTier
    interpretation: str
    recommendation: str
    windows: list[AnalysisWindow]


class DoseIntervalBin(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    min_hours: float
    max_hours: float | None = Field(default=None, description="None for the open-ended bin")
    count: int
    mood_mean: float | None = None
    mood_std_dev: float | None = None


class DoseIntervalResult(BaseModel):
    """Mood as a function of time elapsed since the previous dose."""

    model_config = ConfigDict(frozen=True)

    medication_id: str
    medication_name: str
    total_samples: int
    bins: list[DoseIntervalBin]
    optimal_interval_label: str
    optimal_interval_hours: float
    optimal_mood_mean: float
    interval_mood_correlation: CorrelationResult
    interpretation: str
    recommendation: str


class AdherenceReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    medication_id: str
    medication_name: str
    expected_doses: int = Field(ge=0)
    actual_doses: int = Field(ge=0)
    missed_doses: int = Field(ge=0)
    adherence_rate: float = Field(ge=0.0, le=100.0)
    timing_consistency: float = Field(ge=0.0, le=100.0)
    last_dose_ms: float | None = None


class AdherenceSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    average_adherence: float
    total_missed_doses: int
    average_timing_consistency: float
    medications_on_track: int


class DoseDeviation(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp_ms: float
    deviation_minutes: float
    mood_after: float | None = None


class TemporalAdherenceReport(BaseModel):
    """Punctuality of doses against the medication's scheduled time of day."""

    model_config = ConfigDict(frozen=True)

    medication_id: str
    medication_name: str
    scheduled_time: time
    total_doses: int
    on_time_doses: int
    late_doses: int
    early_doses: int
    average_deviation_minutes: float
    adherence_score: float = Field(ge=0.0, le=100.0)
    pattern: Literal["consistent", "variable", "irregular"]
    recent_trend: Literal["improving", "stable", "declining", "insufficient_data"]
    deviations: list[DoseDeviation]
    deviation_mood_correlation: CorrelationResult | None = None


class ConcentrationMoodInsight(BaseModel):
    """How one mood dimension follows a medication's simulated concentration."""

    model_config = ConfigDict(frozen=True)

    medication_id: str
    medication_name: str
    dimension: MoodDimension
    correlation: float = Field(ge=-1.0, le=1.0)
    p_value: float = Field(ge=0.0, le=1.0)
    sample_size: int = Field(ge=0)
    lag_hours: int = Field(description="Mood is read this many hours after the concentration")
    method: Literal["pearson", "spearman"] = "spearman"
    significance: SignificanceTier
    direction: Literal["positive", "negative"]
    impact_score: float = Field(ge=0.0, description="|r| weighted by -log10(p), for ranking")
    is_desirable: bool
    interpretation: str
    recommendation: str


class RedFlag(BaseModel):
    """A recent pattern worth raising with the prescriber."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["mood_low", "anxiety_high", "energy_low", "volatility", "adherence"]
    severity: Literal["warning", "alert"]
    title: str
    description: str
    dimension: MoodDimension | None = None
    medication_id: str | None = None
    value: float | None = None
    threshold: float | None = None
    occurrences: int = Field(ge=0)
    suggestion: str


class StabilityMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    dimension: MoodDimension
    mean: float
    std_dev: float
    coefficient_of_variation: float
    stability: Literal["stable", "variable", "volatile"]
    trend_7d: float = Field(description="Last 7 days minus earlier entries in the range")
    trend_30d: float = Field(description="Later minus earlier half of the last 30 days")
    data_points: int


class MedicationInsights(BaseModel):
    """Everything the runner computes for one medication."""

    model_config = ConfigDict(frozen=True)

    medication_id: str
    medication_name: str
    variability: VariabilityResult | None = None
    dose_interval: DoseIntervalResult | None = None
    adherence: AdherenceReport | None = None
    concentration_mood: list[ConcentrationMoodInsight] = Field(default_factory=list)
