"""Fixtures used by pytest."""

import pathlib
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

import numpy as np
import polars as pl
import pytest

from lampy.core import models


@pytest.fixture
def sample_data_lam() -> pathlib.Path:
    """Monitor export with four positions, 72 hourly rows and one malformed row."""
    return pathlib.Path(__file__).parent / "sample_data" / "example_monitor.txt"


@pytest.fixture
def sample_data_txt_invalid(tmp_path: pathlib.Path) -> pathlib.Path:
    """File with an extension that lampy does not read."""
    path = tmp_path / "example.json"
    path.write_text("{}")
    return path


@pytest.fixture
def make_series() -> Callable[..., models.SubjectSeries]:
    """Factory for subject series with hourly or custom sample times."""

    def _make_series(
        activity: Sequence[Optional[float]],
        hours: Optional[Sequence[float]] = None,
        subject_id: str = "M1",
    ) -> models.SubjectSeries:
        start = datetime(2024, 5, 2, tzinfo=timezone.utc)
        if hours is None:
            hours = range(len(activity))
        timestamps = [start + timedelta(hours=float(hour)) for hour in hours]
        return models.SubjectSeries(
            subject_id=subject_id,
            data=pl.DataFrame(
                {"timestamp": timestamps, "activity": list(activity)},
                schema=models.SERIES_SCHEMA,
            ),
        )

    return _make_series


@pytest.fixture
def circadian_series(
    make_series: Callable[..., models.SubjectSeries],
) -> models.SubjectSeries:
    """Hourly series of 240 hours with activity 1 + sin(2 pi t / 24)."""
    hours = np.arange(240)
    return make_series(1 + np.sin(2 * np.pi * hours / 24), subject_id="M1")


@pytest.fixture
def two_subject_table() -> models.TidyTable:
    """Tidy table with subjects M1 and M2 sampled hourly for three hours."""
    start = datetime(2024, 5, 2, tzinfo=timezone.utc)
    samples = [
        models.ActivitySample(
            subject_id=subject, timestamp=start + timedelta(hours=hour), activity=value
        )
        for hour in range(3)
        for subject, value in (("M1", [5.0, None, 7.0][hour]), ("M2", 1.0 + hour))
    ]
    return models.TidyTable.from_samples(samples)
