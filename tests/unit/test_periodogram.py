"""Test the Lomb-Scargle periodogram."""

from typing import Callable

import numpy as np
import pytest
from scipy import signal

from lampy.core import config, exceptions, models
from lampy.processing import periodogram


def test_known_signal(circadian_series: models.SubjectSeries) -> None:
    """Test a noiseless 24 hour rhythm peaks within half an hour of 24 hours."""
    result = periodogram.lomb_scargle(
        circadian_series, period_min=18, period_max=30, oversampling_factor=4
    )

    assert abs(result.dominant_period - 24) < 0.5
    assert result.is_significant


def test_points_ordered_by_period(circadian_series: models.SubjectSeries) -> None:
    """Test points are ordered by increasing period within the search window."""
    result = periodogram.lomb_scargle(circadian_series)
    periods = [point.period_hours for point in result.points]

    assert periods == sorted(periods)
    assert periods[0] >= 18 - 1e-9
    assert periods[-1] <= 30 + 1e-9
    assert periods[-1] == pytest.approx(30)
    assert {point.subject_id for point in result.points} == {"M1"}


def test_idempotent(circadian_series: models.SubjectSeries) -> None:
    """Test repeated runs on the same series give the same output."""
    first = periodogram.lomb_scargle(circadian_series)
    second = periodogram.lomb_scargle(circadian_series)

    assert len(first.points) == len(second.points)
    for first_point, second_point in zip(first.points, second.points):
        assert first_point.period_hours == second_point.period_hours
        assert first_point.power == pytest.approx(second_point.power, rel=1e-9)


@pytest.mark.parametrize("oversampling_factor", [1, 4, 10])
def test_oversampling_keeps_dominant_period(
    circadian_series: models.SubjectSeries, oversampling_factor: int
) -> None:
    """Test denser scanning does not move the dominant period."""
    result = periodogram.lomb_scargle(
        circadian_series, oversampling_factor=oversampling_factor
    )

    assert abs(result.dominant_period - 24) < 1.0


def test_oversampling_densifies_grid(circadian_series: models.SubjectSeries) -> None:
    """Test a larger oversampling factor scans more periods."""
    coarse = periodogram.lomb_scargle(circadian_series, oversampling_factor=1)
    dense = periodogram.lomb_scargle(circadian_series, oversampling_factor=8)

    assert len(dense.points) > len(coarse.points)


def test_irregular_sampling_with_missing(
    make_series: Callable[..., models.SubjectSeries],
) -> None:
    """Test irregular sampling and missing samples still find the rhythm."""
    rng = np.random.default_rng(42)
    hours = np.sort(rng.uniform(0, 240, size=300))
    activity = list(5 + 3 * np.cos(2 * np.pi * hours / 24))
    for index in range(0, 300, 7):
        activity[index] = None
    series = make_series(activity, hours=hours)

    result = periodogram.lomb_scargle(series, oversampling_factor=8)

    assert abs(result.dominant_period - 24) < 0.5


def test_matches_scipy_peak(circadian_series: models.SubjectSeries) -> None:
    """Test the power ranking agrees with scipy's Lomb-Scargle implementation."""
    hours, activity = circadian_series.observed_hours()
    frequencies = periodogram.frequency_grid(float(hours.max()), 18, 30, 4)
    expected = signal.lombscargle(
        hours, activity - activity.mean(), 2 * np.pi * frequencies
    )

    result = periodogram.lomb_scargle(circadian_series)
    power = np.array([point.power for point in result.points])[::-1]

    assert np.argmax(power) == np.argmax(expected)
    assert np.corrcoef(power, expected)[0, 1] == pytest.approx(1.0, abs=1e-6)


def test_ten_samples_zero_span(
    make_series: Callable[..., models.SubjectSeries],
) -> None:
    """Test ten samples sharing one timestamp are insufficient."""
    series = make_series(list(range(10)), hours=[0.0] * 10)

    with pytest.raises(exceptions.InsufficientDataError):
        periodogram.lomb_scargle(series)


def test_eleven_samples_nonzero_span(
    make_series: Callable[..., models.SubjectSeries],
) -> None:
    """Test eleven samples over a nonzero span are sufficient."""
    series = make_series([0, 3, 1, 4, 1, 5, 9, 2, 6, 5, 3])

    result = periodogram.lomb_scargle(series)

    assert len(result.points) >= 2
    assert all(np.isfinite(point.power) for point in result.points)


def test_too_few_after_dropping_missing(
    make_series: Callable[..., models.SubjectSeries],
) -> None:
    """Test missing samples do not count towards the minimum."""
    series = make_series([1.0, None] * 6)

    with pytest.raises(exceptions.InsufficientDataError, match="6 non-missing"):
        periodogram.lomb_scargle(series)


@pytest.mark.parametrize("activity", [[0.0] * 48, [3.0] * 11])
def test_constant_activity(
    make_series: Callable[..., models.SubjectSeries], activity: list
) -> None:
    """Test a series without variation has zero power and is not significant."""
    result = periodogram.lomb_scargle(make_series(activity))

    assert len(result.points) >= 2
    assert all(point.power == 0.0 for point in result.points)
    assert result.p_value == 1.0
    assert not result.is_significant
    assert not result.to_data_frame()["significant"].any()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"period_min": 30, "period_max": 18},
        {"period_min": 0, "period_max": 18},
        {"oversampling_factor": 0},
        {"significance_level": 1.5},
    ],
)
def test_invalid_parameters(
    circadian_series: models.SubjectSeries, kwargs: dict
) -> None:
    """Test invalid periodogram parameters raise a ValueError."""
    with pytest.raises(ValueError):
        periodogram.lomb_scargle(circadian_series, **kwargs)


def test_frequency_grid() -> None:
    """Test the grid step is the Rayleigh resolution divided by oversampling."""
    frequencies = periodogram.frequency_grid(100.0, 20.0, 25.0, 2)

    assert frequencies[0] == pytest.approx(1 / 25)
    assert frequencies.size == 3
    assert np.diff(frequencies) == pytest.approx(np.full(2, 1 / 200))
    assert frequencies[-1] == pytest.approx(1 / 20)


def test_frequency_grid_short_span() -> None:
    """Test a span too short for one step still scans both range bounds."""
    frequencies = periodogram.frequency_grid(1.0, 18.0, 30.0, 1)

    assert frequencies == pytest.approx(np.array([1 / 30, 1 / 18]))


def test_noise_is_not_significant(
    make_series: Callable[..., models.SubjectSeries],
) -> None:
    """Test white noise gives a large peak p-value."""
    rng = np.random.default_rng(0)
    result = periodogram.lomb_scargle(make_series(rng.normal(size=240)))

    assert result.p_value > result.significance_level
    assert result.peak_power < result.significance_threshold


def test_compute_periodograms_partial_success(
    circadian_series: models.SubjectSeries,
    make_series: Callable[..., models.SubjectSeries],
) -> None:
    """Test one insufficient subject does not abort the others."""
    short = make_series([1.0, 2.0, 3.0], subject_id="M0")
    other = make_series(
        [point for point in circadian_series.data["activity"]], subject_id="M2"
    )

    batch = periodogram.compute_periodograms(
        [short, circadian_series, other], settings=config.Settings(), max_workers=2
    )

    assert [result.subject_id for result in batch.periodograms] == ["M1", "M2"]
    assert [failure.subject_id for failure in batch.failures] == ["M0"]
    assert batch.failures[0].error_kind == "InsufficientData"


def test_compute_periodograms_matches_serial(
    circadian_series: models.SubjectSeries,
) -> None:
    """Test the parallel map gives the same curve as a direct call."""
    settings = config.Settings(oversampling_factor=2)

    batch = periodogram.compute_periodograms([circadian_series], settings=settings)
    direct = periodogram.lomb_scargle(circadian_series, oversampling_factor=2)

    assert batch.periodograms[0] == direct


def test_compute_periodograms_empty() -> None:
    """Test no series give an empty batch."""
    batch = periodogram.compute_periodograms([])

    assert batch.periodograms == ()
    assert batch.failures == ()


def test_compute_periodograms_ordered_by_identifier(
    circadian_series: models.SubjectSeries,
    make_series: Callable[..., models.SubjectSeries],
) -> None:
    """Test results are merged in identifier order whatever the input order."""
    activity = circadian_series.data["activity"].to_list()
    series = [
        make_series(activity, subject_id="M10"),
        make_series([1.0], subject_id="M3"),
        make_series(activity, subject_id="M2"),
        make_series([1.0], subject_id="M1"),
    ]

    batch = periodogram.compute_periodograms(series, max_workers=4)

    assert [result.subject_id for result in batch.periodograms] == ["M2", "M10"]
    assert [failure.subject_id for failure in batch.failures] == ["M1", "M3"]
