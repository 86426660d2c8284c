"""Lomb-Scargle periodogram of subject activity series."""

import concurrent.futures
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from rich import progress

from lampy.core import computations, config, exceptions, models

logger = config.get_logger()

MIN_SAMPLES = 10


def frequency_grid(
    span_hours: float,
    period_min: float,
    period_max: float,
    oversampling_factor: int,
) -> np.ndarray:
    """Frequencies, in cycles per hour, scanned for a series of the given span.

    The baseline resolution is the Rayleigh resolution 1 / span of the series; the
    oversampling factor divides that step. The grid starts at 1 / period_max and
    does not exceed 1 / period_min. At least the two range bounds are scanned.

    Args:
        span_hours: Time between the first and last sample, in hours.
        period_min: Shortest period to scan, in hours.
        period_max: Longest period to scan, in hours.
        oversampling_factor: Number of scanned frequencies per resolution step.

    Returns:
        The increasing frequency grid.
    """
    frequency_min = 1.0 / period_max
    frequency_max = 1.0 / period_min
    step = 1.0 / (oversampling_factor * span_hours)

    n_frequencies = int(np.floor((frequency_max - frequency_min) / step + 1e-9)) + 1
    if n_frequencies < 2:
        return np.array([frequency_min, frequency_max])
    return frequency_min + step * np.arange(n_frequencies)


def lomb_scargle(
    series: models.SubjectSeries,
    period_min: float = 18.0,
    period_max: float = 30.0,
    oversampling_factor: int = 4,
    significance_level: float = 0.01,
) -> models.Periodogram:
    """Compute the Lomb-Scargle periodogram of a subject series.

    Missing samples are dropped rather than interpolated, and the samples do not
    need to be evenly spaced. For each scanned angular frequency w the phase offset
    tau solves tan(2 w tau) = sum(sin 2 w t) / sum(cos 2 w t), and the power is the
    sum of the squared projections of the mean-subtracted activity onto the
    shifted cosine and sine, each divided by the squared norm of its basis
    function, halved and normalized by the sample variance of the activity. Constant
    activity has zero power at every period and a p-value of 1.

    Args:
        series: The subject series to analyse.
        period_min: Shortest period to scan, in hours.
        period_max: Longest period to scan, in hours.
        oversampling_factor: Number of scanned frequencies per resolution step of
            the series. Must be at least 1.
        significance_level: Alpha for the significance threshold and used to judge
            the peak p-value.

    Returns:
        The periodogram with points ordered by increasing period.

    Raises:
        ValueError: If the period range, oversampling factor or significance level
            is invalid.
        InsufficientDataError: If fewer than MIN_SAMPLES non-missing samples remain,
            or they all share one timestamp.

    References:
        Lomb, N.R. Least-squares frequency analysis of unequally spaced data.
            Astrophys Space Sci 39, 447-462 (1976).
        Scargle, J.D. Studies in astronomical time series analysis. II. The
            Astrophysical Journal 263, 835-853 (1982).
    """
    _validate_parameters(
        period_min, period_max, oversampling_factor, significance_level
    )

    hours, activity = series.observed_hours()
    if hours.size < MIN_SAMPLES:
        raise exceptions.InsufficientDataError(
            f"Subject {series.subject_id} has {hours.size} non-missing samples, at "
            f"least {MIN_SAMPLES} are required."
        )
    span_hours = float(hours.max() - hours.min())
    if span_hours <= 0:
        raise exceptions.InsufficientDataError(
            f"All samples of subject {series.subject_id} share one timestamp."
        )

    frequencies = frequency_grid(
        span_hours, period_min, period_max, oversampling_factor
    )
    logger.debug(
        "Scanning %s frequencies for subject %s.", frequencies.size, series.subject_id
    )

    if np.var(activity, ddof=1) == 0:
        logger.debug("Activity of subject %s does not vary.", series.subject_id)
        power = np.zeros_like(frequencies)
    else:
        power = _lomb_scargle_power(hours, activity, 2 * np.pi * frequencies)

    threshold, p_value = _significance(
        float(power.max()), frequencies.size, oversampling_factor, significance_level
    )

    # Frequencies increase, so periods are emitted in reverse.
    points = tuple(
        models.PeriodogramPoint(
            subject_id=series.subject_id,
            period_hours=float(1.0 / frequency),
            power=float(point_power),
        )
        for frequency, point_power in zip(frequencies[::-1], power[::-1])
    )
    return models.Periodogram(
        subject_id=series.subject_id,
        points=points,
        significance_level=significance_level,
        significance_threshold=threshold,
        p_value=p_value,
    )


def _validate_parameters(
    period_min: float,
    period_max: float,
    oversampling_factor: int,
    significance_level: float,
) -> None:
    """Validate the periodogram parameters.

    Raises:
        ValueError: If any parameter is out of range.
    """
    if not 0 < period_min < period_max:
        raise ValueError(
            f"Period range [{period_min}, {period_max}] must be positive and "
            "increasing."
        )
    if oversampling_factor < 1:
        raise ValueError("Oversampling factor must be at least 1.")
    if not 0 < significance_level < 1:
        raise ValueError("Significance level must be between 0 and 1.")


def _lomb_scargle_power(
    times: np.ndarray, values: np.ndarray, angular_frequencies: np.ndarray
) -> np.ndarray:
    """Classical Lomb-Scargle power, normalized by the sample variance.

    Args:
        times: Sample times.
        values: Sample values.
        angular_frequencies: Angular frequencies to evaluate, in radians per unit
            of time.

    Returns:
        The power at each angular frequency.
    """
    centered = values - values.mean()
    variance = values.var(ddof=1)

    omega_t = np.outer(angular_frequencies, times)
    tau = np.arctan2(
        np.sin(2 * omega_t).sum(axis=1), np.cos(2 * omega_t).sum(axis=1)
    ) / (2 * angular_frequencies)
    phase = omega_t - (angular_frequencies * tau)[:, np.newaxis]
    cos_phase = np.cos(phase)
    sin_phase = np.sin(phase)

    cos_term = _safe_ratio((cos_phase @ centered) ** 2, (cos_phase**2).sum(axis=1))
    sin_term = _safe_ratio((sin_phase @ centered) ** 2, (sin_phase**2).sum(axis=1))
    return 0.5 * (cos_term + sin_term) / variance


def _safe_ratio(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    """Element-wise ratio that is 0 where the denominator vanishes."""
    return np.divide(
        numerator,
        denominator,
        out=np.zeros_like(numerator),
        where=denominator > np.finfo(float).eps,
    )


def _significance(
    peak_power: float,
    n_frequencies: int,
    oversampling_factor: int,
    significance_level: float,
) -> Tuple[float, float]:
    """Significance threshold and peak p-value of a normalized periodogram.

    The number of independent frequencies is estimated as twice the number of
    scanned frequencies divided by the oversampling factor.

    Returns:
        The power threshold at significance_level and the false alarm probability
        of peak_power.
    """
    n_independent = 2.0 * n_frequencies / oversampling_factor
    threshold = -np.log(1.0 - (1.0 - significance_level) ** (1.0 / n_independent))
    if peak_power <= 0:
        return float(threshold), 1.0
    p_value = -np.expm1(n_independent * np.log1p(-np.exp(-peak_power)))
    return float(threshold), float(min(max(p_value, 0.0), 1.0))


def _analyse_subject(
    series: models.SubjectSeries, settings: config.Settings
) -> Union[models.Periodogram, models.SubjectFailure]:
    """Run the periodogram of one subject, turning insufficient data into a failure."""
    try:
        return lomb_scargle(
            series,
            period_min=settings.period_min_hours,
            period_max=settings.period_max_hours,
            oversampling_factor=settings.oversampling_factor,
            significance_level=settings.significance_level,
        )
    except exceptions.InsufficientDataError as exc_info:
        return models.SubjectFailure(
            subject_id=series.subject_id,
            error_kind="InsufficientData",
            message=str(exc_info),
        )


def compute_periodograms(
    series: Sequence[models.SubjectSeries],
    settings: Optional[config.Settings] = None,
    max_workers: Optional[int] = None,
    show_progress: bool = False,
) -> models.PeriodogramBatch:
    """Compute the periodogram of every subject in parallel.

    Subjects are analysed independently on a thread pool. A subject with
    insufficient data is reported as a failure without stopping the others.

    Args:
        series: The subject series to analyse.
        settings: The period range, oversampling factor and significance level.
            Defaults to Settings().
        max_workers: Number of worker threads. Defaults to the executor's default.
        show_progress: If true, displays a progress bar.

    Returns:
        The periodograms and failures, each ordered by subject identifier with
        computations.subject_sort_key. Equal identifiers keep their input order.
    """
    settings = settings or config.Settings()
    results: Dict[int, Union[models.Periodogram, models.SubjectFailure]] = {}

    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(_analyse_subject, subject_series, settings): index
            for index, subject_series in enumerate(series)
        }
        with progress.Progress(
            progress.SpinnerColumn(),
            progress.TextColumn("[progress.description]{task.description}"),
            progress.BarColumn(),
            progress.TaskProgressColumn(),
            disable=not show_progress,
        ) as progress_bar:
            task = progress_bar.add_task(
                "[cyan]Computing periodograms...", total=len(futures)
            )
            for future in concurrent.futures.as_completed(futures):
                results[futures[future]] = future.result()
                progress_bar.update(task, advance=1)

    periodograms: List[models.Periodogram] = []
    failures: List[models.SubjectFailure] = []
    merge_order = sorted(
        range(len(series)),
        key=lambda index: computations.subject_sort_key(series[index].subject_id),
    )
    for index in merge_order:
        result = results[index]
        if isinstance(result, models.SubjectFailure):
            failures.append(result)
        else:
            periodograms.append(result)

    logger.debug(
        "Computed %s periodograms, %s subjects failed.",
        len(periodograms),
        len(failures),
    )
    return models.PeriodogramBatch(
        periodograms=tuple(periodograms), failures=tuple(failures)
    )
