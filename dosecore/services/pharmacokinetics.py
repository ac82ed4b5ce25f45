"""
One-compartment pharmacokinetic simulator with first-order absorption.

Each dose contributes the Bateman function

    C(dt) = F * D * Ka / (Vd * (Ka - Ke)) * (exp(-Ke * dt) - exp(-Ka * dt))

and contributions of all doses taken at or before t are summed (linear
superposition). When Ka and Ke coincide the closed form is 0/0; there the
analytic limit

    C(dt) = F * D * Ke * dt / Vd * exp(-Ke * dt)

is used instead, so the curve stays finite and continuous in Ka.

The evaluation is vectorised over a (samples x doses) grid: O(N * D) work,
processed in row chunks to bound memory for long dose histories.
"""

import math
from collections.abc import Sequence

import numpy as np
import structlog

from dosecore.config import get_config
from dosecore.domain.errors import InvalidParameterError
from dosecore.domain.models import ConcentrationSample, DoseEvent, Medication, MedicationPK

logger = structlog.get_logger(__name__)

HOUR_MS = 3_600_000.0

# Upper bound on grid cells evaluated at once
_MAX_GRID_CELLS = 1_000_000


def _resolve_epsilon(epsilon: float | None) -> float:
    return get_config().analytics.ka_ke_epsilon if epsilon is None else epsilon


def dose_contribution(
    pk: MedicationPK,
    amount_mg: float,
    dt_hours: float,
    epsilon: float | None = None,
) -> float:
    """Concentration contributed by one dose dt_hours after it was taken."""
    if dt_hours <= 0:
        return 0.0
    epsilon = _resolve_epsilon(epsilon)
    ka = pk.absorption_rate_ka
    ke = pk.elimination_rate_ke
    f = pk.bioavailability
    vd = pk.volume_of_distribution

    if abs(ka - ke) < epsilon:
        value = f * amount_mg * ke * dt_hours / vd * math.exp(-ke * dt_hours)
    else:
        value = (f * amount_mg * ka) / (vd * (ka - ke)) * (
            math.exp(-ke * dt_hours) - math.exp(-ka * dt_hours)
        )
    return max(0.0, value)


def _superpose(
    pk: MedicationPK,
    doses: Sequence[DoseEvent],
    times_ms: np.ndarray,
    epsilon: float | None,
) -> np.ndarray:
    totals = np.zeros(times_ms.shape[0], dtype=float)
    if not doses or times_ms.size == 0:
        return totals

    dose_times = np.fromiter((d.timestamp_ms for d in doses), dtype=float, count=len(doses))
    amounts = np.fromiter((d.amount_mg for d in doses), dtype=float, count=len(doses))

    ka = pk.absorption_rate_ka
    ke = pk.elimination_rate_ke
    f = pk.bioavailability
    vd = pk.volume_of_distribution
    limiting = abs(ka - ke) < _resolve_epsilon(epsilon)
    scale = f * amounts / vd if limiting else f * amounts * ka / (vd * (ka - ke))

    rows_per_chunk = max(1, _MAX_GRID_CELLS // len(doses))
    for start in range(0, times_ms.shape[0], rows_per_chunk):
        chunk = times_ms[start : start + rows_per_chunk]
        dt = (chunk[:, np.newaxis] - dose_times[np.newaxis, :]) / HOUR_MS
        active = dt > 0
        dt = np.where(active, dt, 0.0)

        if limiting:
            per_dose = scale * ke * dt * np.exp(-ke * dt)
        else:
            per_dose = scale * (np.exp(-ke * dt) - np.exp(-ka * dt))

        per_dose = np.where(active, np.maximum(per_dose, 0.0), 0.0)
        totals[start : start + len(chunk)] = per_dose.sum(axis=1)

    return totals


def concentrations_at_times(
    pk: MedicationPK,
    doses: Sequence[DoseEvent],
    times_ms: Sequence[float],
    epsilon: float | None = None,
) -> np.ndarray:
    """Superposed concentration at each of the given instants."""
    return _superpose(pk, doses, np.asarray(times_ms, dtype=float), epsilon)


def concentration_at(
    pk: MedicationPK,
    doses: Sequence[DoseEvent],
    time_ms: float,
    epsilon: float | None = None,
) -> float:
    """Superposed concentration at a single instant."""
    return float(concentrations_at_times(pk, doses, [time_ms], epsilon)[0])


def concentration_series(
    pk: MedicationPK,
    doses: Sequence[DoseEvent],
    start_ms: float,
    end_ms: float,
    sample_count: int,
    epsilon: float | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """Equally spaced sample times in [start_ms, end_ms] and the concentration at each."""
    if sample_count < 1:
        raise InvalidParameterError("sample_count", sample_count, "must be >= 1")
    if end_ms < start_ms:
        raise InvalidParameterError("end_ms", end_ms, "must not precede start_ms")

    times = np.linspace(start_ms, end_ms, num=sample_count, dtype=float)
    return times, _superpose(pk, doses, times, epsilon)


def generate_concentration_curve(
    pk: MedicationPK,
    doses: Sequence[DoseEvent],
    start_ms: float,
    end_ms: float,
    sample_count: int | None = None,
    epsilon: float | None = None,
) -> list[ConcentrationSample]:
    """
    Sample the superposed concentration curve.

    Args:
        pk: Validated PK parameters of the medication.
        doses: Doses of that medication; order does not matter.
        start_ms: First sample time (inclusive).
        end_ms: Last sample time (inclusive).
        sample_count: Number of equally spaced samples, at least 1. Defaults
            to the configured curve resolution.
        epsilon: |Ka - Ke| below which the limiting form is used. Defaults to
            the configured value.

    Returns:
        list[ConcentrationSample]: One sample per timestamp, in time order.

    Raises:
        InvalidParameterError: If sample_count < 1 or end_ms < start_ms.
    """
    if sample_count is None:
        sample_count = get_config().analytics.default_curve_points
    times, values = concentration_series(pk, doses, start_ms, end_ms, sample_count, epsilon)
    logger.debug(
        "concentration_curve_generated",
        samples=sample_count,
        doses=len(doses),
        peak=float(values.max()) if values.size else 0.0,
    )
    return [
        ConcentrationSample(time_ms=float(t), concentration=float(c))
        for t, c in zip(times, values, strict=True)
    ]


def time_to_peak_hours(pk: MedicationPK, epsilon: float | None = None) -> float:
    """Tmax of a single dose: ln(Ka/Ke) / (Ka - Ke), or 1/Ke when they coincide."""
    ka = pk.absorption_rate_ka
    ke = pk.elimination_rate_ke
    if abs(ka - ke) < _resolve_epsilon(epsilon):
        return 1.0 / ke
    return math.log(ka / ke) / (ka - ke)


def sample_concentration_at_times(
    pk: MedicationPK,
    doses: Sequence[DoseEvent],
    times_ms: Sequence[float],
    min_nonzero: float = 0.01,
) -> list[float | None]:
    """Concentrations at arbitrary instants, None where the level is negligible."""
    values = concentrations_at_times(pk, doses, times_ms)
    return [float(v) if v > min_nonzero else None for v in values]


def compute_trend(
    times_ms: Sequence[float],
    values: Sequence[float | None],
    window_ms: float,
    min_points: int = 3,
) -> list[float | None]:
    """
    Trailing moving average over [t - window_ms, t] for irregular timestamps.

    Missing values are skipped; positions with fewer than min_points values in
    their window stay None.
    """
    result: list[float | None] = [None] * len(values)
    window: list[tuple[float, float]] = []
    head = 0
    running_sum = 0.0

    for i, (t, v) in enumerate(zip(times_ms, values, strict=False)):
        if v is not None and math.isfinite(v):
            window.append((t, v))
            running_sum += v

        cutoff = t - window_ms
        while head < len(window) and window[head][0] < cutoff:
            running_sum -= window[head][1]
            head += 1

        if len(window) - head >= min_points:
            result[i] = running_sum / (len(window) - head)

    return result


def trend_window_ms(medication: Medication) -> float:
    """48h for chronic medications, otherwise a few half-lives (at least 6h)."""
    hours = 48.0 if medication.is_chronic else max(6.0, 3.5 * medication.pk.half_life_hours)
    return hours * HOUR_MS


def sample_trend_concentration_at_times(
    medication: Medication,
    doses: Sequence[DoseEvent],
    times_ms: Sequence[float],
) -> list[float | None]:
    """Smoothed concentration level, the signal that tracks days-scale mood changes."""
    raw = sample_concentration_at_times(medication.pk, doses, times_ms)
    return compute_trend(times_ms, raw, trend_window_ms(medication), min_points=3)
