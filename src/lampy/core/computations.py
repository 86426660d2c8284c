"""This module contains functions to select subjects and summarize their activity."""

import re
from typing import AbstractSet, List, Tuple, Union

import polars as pl

from lampy.core import config, models

logger = config.get_logger()


def subject_sort_key(subject_id: str) -> Tuple[Union[str, int], ...]:
    """Sort key ordering identifiers naturally, so Subject_2 precedes Subject_10."""
    parts = re.split(r"(\d+)", subject_id)
    return tuple(int(part) if index % 2 else part for index, part in enumerate(parts))


def select_subjects(
    table: models.TidyTable, subject_filter: AbstractSet[str] = frozenset()
) -> List[models.SubjectSeries]:
    """Split the tidy table into one series per retained subject.

    Args:
        table: The tidy activity table.
        subject_filter: Identifiers of the subjects to retain. An empty set retains
            all subjects. Identifiers that are not in the table are ignored, so a
            filter that matches nothing returns an empty list.

    Returns:
        The series of each retained subject, ordered by subject identifier with
        subject_sort_key, so the order does not depend on the row order of the
        table. Samples within a series are sorted by timestamp.
    """
    all_subject_ids = sorted(table.subject_ids, key=subject_sort_key)
    subject_ids = all_subject_ids
    if subject_filter:
        unknown = sorted(set(subject_filter) - set(all_subject_ids))
        if unknown:
            logger.debug("Subjects not present in the table: %s", unknown)
        subject_ids = [
            subject for subject in all_subject_ids if subject in subject_filter
        ]

    partitions = table.data.partition_by(
        "subject_id", maintain_order=True, as_dict=True
    )
    series = [
        models.SubjectSeries(
            subject_id=subject,
            data=partitions[(subject,)]
            .select("timestamp", "activity")
            .sort("timestamp", maintain_order=True),
        )
        for subject in subject_ids
    ]
    logger.debug("Selected %s of %s subjects.", len(series), len(all_subject_ids))
    return series


def summarize_series(series: models.SubjectSeries) -> models.SummaryRow:
    """Compute the activity summary of one subject.

    Missing samples are ignored. The mean averages over non-missing samples only.

    Args:
        series: The subject series to summarize.

    Returns:
        The summary row. If the subject has no non-missing samples, the total is 0
        and the peak and mean are UNDEFINED.
    """
    statistics = series.data.select(
        total=pl.col("activity").sum(),
        peak=pl.col("activity").max(),
        n_missing=pl.col("activity").null_count(),
    ).row(0, named=True)

    n_samples = series.data.height
    n_observed = n_samples - statistics["n_missing"]
    if n_observed == 0:
        return models.SummaryRow(
            subject_id=series.subject_id,
            total_activity=0.0,
            peak_activity=models.UNDEFINED,
            mean_activity=models.UNDEFINED,
            n_samples=n_samples,
            n_missing=statistics["n_missing"],
        )

    total = float(statistics["total"])
    return models.SummaryRow(
        subject_id=series.subject_id,
        total_activity=total,
        peak_activity=float(statistics["peak"]),
        mean_activity=total / n_observed,
        n_samples=n_samples,
        n_missing=statistics["n_missing"],
    )


def summarize_subjects(
    table: models.TidyTable, subject_filter: AbstractSet[str] = frozenset()
) -> List[models.SummaryRow]:
    """Compute one summary row per retained subject.

    Args:
        table: The tidy activity table.
        subject_filter: Identifiers of the subjects to retain. An empty set retains
            all subjects.

    Returns:
        The summary rows, in the same order as select_subjects.
    """
    return [
        summarize_series(series) for series in select_subjects(table, subject_filter)
    ]
