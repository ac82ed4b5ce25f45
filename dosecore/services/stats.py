"""
Statistical primitives shared by every analyzer.

All functions are total: empty or degenerate input yields zeros and the "none"
significance tier, never an exception or a division by zero. The one infinite
result is the t-test of two constant, unequal samples. p-values follow a
fixed-threshold approximation of the t distribution instead of a full CDF.
"""

import math
import statistics
from collections.abc import Sequence
from typing import Literal

from dosecore.domain.models import (
    CorrelationResult,
    DescriptiveStats,
    LaggedCorrelation,
    SignificanceTier,
    TTestResult,
)

# |t| thresholds of the two-tailed approximation and the p-values they map to
T_CRITICAL_01 = 2.57
T_CRITICAL_05 = 1.96
P_STRONG = 0.01
P_MODERATE = 0.05
P_NOT_SIGNIFICANT = 0.5

_R_CLAMP = 1.0 - 1e-10


def mean(values: Sequence[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def variance(values: Sequence[float]) -> float:
    """Sample variance (n-1 denominator); 0.0 for fewer than two values."""
    return statistics.variance(values) if len(values) >= 2 else 0.0


def std_dev(values: Sequence[float]) -> float:
    """Sample standard deviation (n-1 denominator); 0.0 for fewer than two values."""
    return math.sqrt(variance(values))


def median(values: Sequence[float]) -> float:
    return statistics.median(values) if values else 0.0


def approximate_p_value(t_statistic: float) -> float:
    """Two-tailed p-value from fixed |t| thresholds."""
    abs_t = abs(t_statistic)
    if abs_t > T_CRITICAL_01:
        return P_STRONG
    if abs_t > T_CRITICAL_05:
        return P_MODERATE
    return P_NOT_SIGNIFICANT


def significance_tier(p_value: float, effect: float) -> SignificanceTier:
    """Tier a finding by both its p-value and the magnitude of its effect."""
    magnitude = abs(effect)
    if p_value <= 0.01 and magnitude >= 0.7:
        return SignificanceTier.STRONG
    if p_value <= 0.05 and magnitude >= 0.4:
        return SignificanceTier.MODERATE
    if magnitude >= 0.2:
        return SignificanceTier.WEAK
    return SignificanceTier.NONE


def describe_strength(r: float) -> Literal["weak", "moderate", "strong"]:
    magnitude = abs(r)
    if magnitude > 0.7:
        return "strong"
    if magnitude > 0.4:
        return "moderate"
    return "weak"


def _no_correlation(
    sample_size: int, method: Literal["pearson", "spearman"] = "pearson"
) -> CorrelationResult:
    return CorrelationResult(
        r=0.0,
        p_value=1.0,
        t_statistic=0.0,
        sample_size=sample_size,
        significance=SignificanceTier.NONE,
        method=method,
    )


def pearson_correlation(xs: Sequence[float], ys: Sequence[float]) -> CorrelationResult:
    """
    Pearson product-moment correlation.

    Returns r=0 with tier "none" when n < 3, the series differ in length, or
    either series is constant.
    """
    n = len(xs)
    if n != len(ys) or n < 3:
        return _no_correlation(n)
    if max(xs) == min(xs) or max(ys) == min(ys):
        return _no_correlation(n)

    mean_x = statistics.fmean(xs)
    mean_y = statistics.fmean(ys)
    sxy = sxx = syy = 0.0
    for x, y in zip(xs, ys, strict=True):
        dx = x - mean_x
        dy = y - mean_y
        sxy += dx * dy
        sxx += dx * dx
        syy += dy * dy

    denominator = math.sqrt(sxx * syy)
    if denominator == 0.0 or not math.isfinite(denominator):
        return _no_correlation(n)

    r = max(-1.0, min(1.0, sxy / denominator))
    r_t = max(-_R_CLAMP, min(_R_CLAMP, r))
    t_statistic = r_t * math.sqrt((n - 2) / (1.0 - r_t * r_t))
    p_value = approximate_p_value(t_statistic)

    return CorrelationResult(
        r=r,
        p_value=p_value,
        t_statistic=t_statistic,
        sample_size=n,
        significance=significance_tier(p_value, r),
        method="pearson",
    )


def rank_data(values: Sequence[float]) -> list[float]:
    """1-based ranks, ties receiving the average of the ranks they span."""
    order = sorted(range(len(values)), key=lambda i: values[i])
    ranks = [0.0] * len(values)
    i = 0
    while i < len(order):
        j = i
        while j + 1 < len(order) and values[order[j + 1]] == values[order[i]]:
            j += 1
        average_rank = (i + j) / 2 + 1
        for k in range(i, j + 1):
            ranks[order[k]] = average_rank
        i = j + 1
    return ranks


def spearman_correlation(xs: Sequence[float], ys: Sequence[float]) -> CorrelationResult:
    """Rank correlation: Pearson on average ranks."""
    if len(xs) != len(ys) or len(xs) < 3:
        return _no_correlation(len(xs), method="spearman")
    result = pearson_correlation(rank_data(xs), rank_data(ys))
    return result.model_copy(update={"method": "spearman"})


def cohens_d(a: Sequence[float], b: Sequence[float]) -> float:
    """Standardized mean difference (mean_a - mean_b) / pooled sd."""
    na, nb = len(a), len(b)
    if na < 2 or nb < 2:
        return 0.0
    pooled_variance = ((na - 1) * variance(a) + (nb - 1) * variance(b)) / (na + nb - 2)
    difference = mean(a) - mean(b)
    if pooled_variance <= 0.0:
        # constant samples: any nonzero difference is a complete separation
        return math.copysign(math.inf, difference) if difference else 0.0
    return difference / math.sqrt(pooled_variance)


def welch_t_test(a: Sequence[float], b: Sequence[float]) -> TTestResult:
    """
    Welch's unequal-variance t-test.

    Degrees of freedom follow Welch-Satterthwaite. Samples with fewer than two
    values, or two identical constant samples, produce t=0. Two constant
    samples with different means are perfectly separated: t and d are infinite
    with the sign of the difference, so the finding is strong.
    """
    na, nb = len(a), len(b)
    t_statistic = 0.0
    degrees_of_freedom = 0.0

    if na >= 2 and nb >= 2:
        va_n = variance(a) / na
        vb_n = variance(b) / nb
        standard_error_sq = va_n + vb_n
        if standard_error_sq > 0.0:
            t_statistic = (mean(a) - mean(b)) / math.sqrt(standard_error_sq)
            degrees_of_freedom = standard_error_sq**2 / (
                va_n**2 / (na - 1) + vb_n**2 / (nb - 1)
            )
        elif mean(a) != mean(b):
            t_statistic = math.copysign(math.inf, mean(a) - mean(b))
            degrees_of_freedom = float(na + nb - 2)

    p_value = approximate_p_value(t_statistic)
    effect_size = cohens_d(a, b)
    return TTestResult(
        t_statistic=t_statistic,
        degrees_of_freedom=degrees_of_freedom,
        p_value=p_value,
        effect_size=effect_size,
        significance=significance_tier(p_value, effect_size),
    )


def descriptive_stats(values: Sequence[float]) -> DescriptiveStats:
    if not values:
        return DescriptiveStats(
            count=0,
            mean=0.0,
            median=0.0,
            std_dev=0.0,
            variance=0.0,
            minimum=0.0,
            maximum=0.0,
            q1=0.0,
            q3=0.0,
        )
    ordered = sorted(values)
    n = len(ordered)
    return DescriptiveStats(
        count=n,
        mean=mean(ordered),
        median=median(ordered),
        std_dev=std_dev(ordered),
        variance=variance(ordered),
        minimum=ordered[0],
        maximum=ordered[-1],
        q1=ordered[int(n * 0.25)],
        q3=ordered[int(n * 0.75)],
    )


def _first_differences(values: Sequence[float]) -> list[float]:
    return [math.nan] + [values[i] - values[i - 1] for i in range(1, len(values))]


def cross_correlation(
    xs: Sequence[float],
    ys: Sequence[float],
    max_lag: int = 24,
    min_pairs: int = 5,
    method: Literal["pearson", "spearman"] = "pearson",
    transform: Literal["levels", "differences"] = "levels",
) -> list[LaggedCorrelation]:
    """
    Correlate x[i] with y[i + lag] for every lag in [-max_lag, max_lag].

    Pairs where either side is NaN are skipped; lags with fewer than
    min_pairs usable pairs report a zero correlation.
    """
    length = min(len(xs), len(ys))
    tx = _first_differences(xs) if transform == "differences" else list(xs)
    ty = _first_differences(ys) if transform == "differences" else list(ys)
    correlate = spearman_correlation if method == "spearman" else pearson_correlation

    results: list[LaggedCorrelation] = []
    for lag in range(-max_lag, max_lag + 1):
        pairs = [
            (tx[i], ty[i + lag])
            for i in range(max(0, -lag), min(length, length - lag))
            if math.isfinite(tx[i]) and math.isfinite(ty[i + lag])
        ]
        if len(pairs) >= min_pairs:
            corr = correlate([p[0] for p in pairs], [p[1] for p in pairs])
            results.append(
                LaggedCorrelation(
                    lag=lag,
                    correlation=corr.r,
                    sample_size=corr.sample_size,
                    p_value=corr.p_value,
                    significance=corr.significance,
                )
            )
        else:
            results.append(
                LaggedCorrelation(
                    lag=lag,
                    correlation=0.0,
                    sample_size=len(pairs),
                    p_value=1.0,
                    significance=SignificanceTier.NONE,
                )
            )
    return results


def lagged_correlation(
    times_ms: Sequence[float],
    xs: Sequence[float | None],
    ys: Sequence[float | None],
    lag_hours: int,
    method: Literal["pearson", "spearman"] = "pearson",
) -> LaggedCorrelation:
    """
    Correlate x(t) with y(t + lag_hours) on a uniformly spaced series.

    The sampling interval is read from the first two timestamps; missing
    values on either side drop the pair.
    """
    if len(times_ms) < 3 or times_ms[1] <= times_ms[0]:
        return LaggedCorrelation(
            lag=lag_hours,
            correlation=0.0,
            sample_size=0,
            p_value=1.0,
            significance=SignificanceTier.NONE,
        )

    interval_ms = times_ms[1] - times_ms[0]
    shift = round(lag_hours * 3_600_000 / interval_ms)
    length = min(len(times_ms), len(xs), len(ys))

    pair_x: list[float] = []
    pair_y: list[float] = []
    for i in range(max(0, -shift), min(length, length - shift)):
        x, y = xs[i], ys[i + shift]
        if x is not None and y is not None and math.isfinite(x) and math.isfinite(y):
            pair_x.append(x)
            pair_y.append(y)

    correlate = spearman_correlation if method == "spearman" else pearson_correlation
    corr = correlate(pair_x, pair_y)
    return LaggedCorrelation(
        lag=lag_hours,
        correlation=corr.r,
        sample_size=len(pair_x),
        p_value=corr.p_value,
        significance=corr.significance,
    )
