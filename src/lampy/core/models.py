"""Internal data model.

All models are frozen: they are produced once per pipeline run and only read
by downstream stages.
"""

import datetime
import enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

import numpy as np
import polars as pl
import pydantic
from pydantic import BaseModel, field_validator

TIDY_SCHEMA: Dict[str, pl.DataType] = {
    "subject_id": pl.Utf8(),
    "timestamp": pl.Datetime("us", "UTC"),
    "activity": pl.Float64(),
}
SERIES_SCHEMA: Dict[str, pl.DataType] = {
    "timestamp": TIDY_SCHEMA["timestamp"],
    "activity": TIDY_SCHEMA["activity"],
}


def as_utc(timestamp: datetime.datetime) -> datetime.datetime:
    """Normalizes a timestamp to an aware UTC datetime with second precision.

    Naive timestamps are taken to already be in UTC.
    """
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=datetime.timezone.utc)
    else:
        timestamp = timestamp.astimezone(datetime.timezone.utc)
    return timestamp.replace(microsecond=0)


def _conform(
    data_frame: pl.DataFrame, schema: Dict[str, pl.DataType]
) -> pl.DataFrame:
    """Checks the columns of a data frame and casts them to the given schema.

    Args:
        data_frame: The data frame to check.
        schema: Mapping of required column names to their target types.

    Returns:
        The data frame restricted to the schema columns, in schema order.

    Raises:
        ValueError: If a column is missing, or the timestamp column is not a
            UTC datetime column.
    """
    missing = [name for name in schema if name not in data_frame.columns]
    if missing:
        raise ValueError(f"Data frame is missing required columns: {missing}")

    timestamp_dtype = data_frame.schema["timestamp"]
    if not isinstance(timestamp_dtype, pl.Datetime):
        raise ValueError("timestamp must be a datetime column")
    if timestamp_dtype.time_zone != "UTC":
        raise ValueError("timestamp must be in UTC")

    return data_frame.select(
        [pl.col(name).cast(dtype) for name, dtype in schema.items()]
    )


class RawRecord(BaseModel):
    """One line of the monitor export.

    Subject identity is positional: the n-th activity reading belongs to the n-th
    activity column.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    line_number: int
    timestamp: datetime.datetime
    activity: Tuple[Optional[float], ...]

    @field_validator("timestamp")
    def validate_timestamp(cls, v: datetime.datetime) -> datetime.datetime:
        """Normalize the timestamp to UTC."""
        return as_utc(v)


class ActivitySample(BaseModel):
    """A single tidy observation of one subject at one time.

    A missing reading is stored as None, which is distinct from zero activity.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    subject_id: str
    timestamp: datetime.datetime
    activity: Optional[float] = None

    @field_validator("timestamp")
    def validate_timestamp(cls, v: datetime.datetime) -> datetime.datetime:
        """Normalize the timestamp to UTC."""
        return as_utc(v)


class TidyTable(BaseModel):
    """Long-format activity table with one row per subject per timestamp.

    The underlying data frame has the columns 'subject_id', 'timestamp' (UTC) and
    'activity' (nullable).
    """

    model_config = pydantic.ConfigDict(frozen=True, arbitrary_types_allowed=True)

    data: pl.DataFrame

    @field_validator("data")
    def validate_data(cls, v: pl.DataFrame) -> pl.DataFrame:
        """Validate the tidy data frame.

        Args:
            cls: The class.
            v: The data frame to validate.

        Returns:
            v: The data frame, restricted and cast to the tidy schema.

        Raises:
            ValueError: If a required column is missing or has the wrong type.
        """
        return _conform(v, TIDY_SCHEMA)

    @classmethod
    def from_samples(cls, samples: Iterable[ActivitySample]) -> "TidyTable":
        """Creates a tidy table from activity samples, keeping their order.

        Args:
            samples: The samples to include.
        """
        rows = list(samples)
        return TidyTable(
            data=pl.DataFrame(
                {
                    "subject_id": [sample.subject_id for sample in rows],
                    "timestamp": [sample.timestamp for sample in rows],
                    "activity": [sample.activity for sample in rows],
                },
                schema=TIDY_SCHEMA,
            )
        )

    def samples(self) -> Iterator[ActivitySample]:
        """Iterates over the table rows as ActivitySample instances."""
        for row in self.data.iter_rows(named=True):
            yield ActivitySample(**row)

    @property
    def subject_ids(self) -> List[str]:
        """Subject identifiers in order of first appearance."""
        return self.data["subject_id"].unique(maintain_order=True).to_list()

    def __len__(self) -> int:
        """Number of rows in the table."""
        return self.data.height


class SubjectSeries(BaseModel):
    """All samples of one subject, ordered by timestamp ascending."""

    model_config = pydantic.ConfigDict(frozen=True, arbitrary_types_allowed=True)

    subject_id: str
    data: pl.DataFrame

    @field_validator("data")
    def validate_data(cls, v: pl.DataFrame) -> pl.DataFrame:
        """Validate the series data frame.

        Check that the data frame has timestamp and activity columns and that the
        timestamps are sorted.

        Args:
            cls: The class.
            v: The data frame to validate.

        Returns:
            v: The data frame, restricted and cast to the series schema.

        Raises:
            ValueError: If a column is missing or the timestamps are not sorted.
        """
        v = _conform(v, SERIES_SCHEMA)
        if not v["timestamp"].is_sorted():
            raise ValueError("Series timestamps must be sorted")
        return v

    def samples(self) -> Iterator[ActivitySample]:
        """Iterates over the series as ActivitySample instances."""
        for row in self.data.iter_rows(named=True):
            yield ActivitySample(subject_id=self.subject_id, **row)

    @property
    def n_observed(self) -> int:
        """Number of samples with an activity value."""
        return self.data.height - self.data["activity"].null_count()

    def observed_hours(self) -> Tuple[np.ndarray, np.ndarray]:
        """Elapsed hours and activity of the non-missing samples.

        Returns:
            A tuple of elapsed hours since the earliest non-missing sample and the
            matching activity values, both as float arrays.
        """
        observed = self.data.drop_nulls("activity")
        hours = observed.select(
            (pl.col("timestamp") - pl.col("timestamp").min()).dt.total_seconds()
            / 3600.0
        ).to_series()
        return (
            hours.to_numpy().astype(float),
            observed["activity"].to_numpy().astype(float),
        )


class UndefinedStatistic(enum.Enum):
    """Marker for a statistic that cannot be computed from the data."""

    UNDEFINED = "undefined"


UNDEFINED = UndefinedStatistic.UNDEFINED


class SummaryRow(BaseModel):
    """Per-subject activity summary computed over non-missing samples.

    Attributes:
        subject_id: The subject the row describes.
        total_activity: Sum of non-missing activity, 0 if there is none.
        peak_activity: Maximum non-missing activity, or UNDEFINED.
        mean_activity: Mean over non-missing activity, or UNDEFINED.
        n_samples: Number of samples, missing included.
        n_missing: Number of missing samples.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    subject_id: str
    total_activity: float
    peak_activity: Union[float, UndefinedStatistic]
    mean_activity: Union[float, UndefinedStatistic]
    n_samples: int
    n_missing: int


class PeriodogramPoint(BaseModel):
    """Power of one scanned period."""

    model_config = pydantic.ConfigDict(frozen=True)

    subject_id: str
    period_hours: float
    power: float


class Periodogram(BaseModel):
    """Lomb-Scargle periodogram of one subject.

    Attributes:
        subject_id: The subject analysed.
        points: Scanned periods and their power, ordered by increasing period.
        significance_level: The alpha used for the significance threshold.
        significance_threshold: Power a peak must exceed to be significant at
            significance_level.
        p_value: False alarm probability of the highest peak.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    subject_id: str
    points: Tuple[PeriodogramPoint, ...]
    significance_level: float
    significance_threshold: float
    p_value: float

    @field_validator("points")
    def validate_points(
        cls, v: Tuple[PeriodogramPoint, ...]
    ) -> Tuple[PeriodogramPoint, ...]:
        """Validate that the points are non-empty and ordered by period.

        Raises:
            ValueError: If there are no points, or the periods are not increasing.
        """
        if not v:
            raise ValueError("A periodogram needs at least one point")
        periods = [point.period_hours for point in v]
        if any(later <= earlier for earlier, later in zip(periods, periods[1:])):
            raise ValueError("Periodogram points must be ordered by increasing period")
        return v

    @property
    def dominant_period(self) -> float:
        """Period of the scanned point with maximum power."""
        return max(self.points, key=lambda point: point.power).period_hours

    @property
    def peak_power(self) -> float:
        """Maximum power over the scanned periods."""
        return max(point.power for point in self.points)

    @property
    def is_significant(self) -> bool:
        """Whether the peak is significant at the configured level."""
        return self.p_value < self.significance_level

    def to_data_frame(self) -> pl.DataFrame:
        """Converts the periodogram to a polars DataFrame.

        Returns:
            One row per scanned period with the columns 'subject_id',
            'period_hours', 'power' and 'significant'.
        """
        return pl.DataFrame(
            {
                "subject_id": [point.subject_id for point in self.points],
                "period_hours": [point.period_hours for point in self.points],
                "power": [point.power for point in self.points],
            },
            schema={
                "subject_id": pl.Utf8,
                "period_hours": pl.Float64,
                "power": pl.Float64,
            },
        ).with_columns(significant=pl.col("power") > self.significance_threshold)


class RowFailure(BaseModel):
    """An input row that could not be parsed."""

    model_config = pydantic.ConfigDict(frozen=True)

    line_number: int
    line: str
    error_kind: str
    message: str


class SubjectFailure(BaseModel):
    """A subject whose analysis could not be completed."""

    model_config = pydantic.ConfigDict(frozen=True)

    subject_id: str
    error_kind: str
    message: str


class RawReadResult(BaseModel):
    """Records parsed from a monitor export, along with the rows that failed."""

    model_config = pydantic.ConfigDict(frozen=True)

    subject_ids: Tuple[str, ...]
    records: Tuple[RawRecord, ...]
    failures: Tuple[RowFailure, ...] = ()


class TidyReadResult(BaseModel):
    """A tidy table read from an interchange file, along with rejected rows."""

    model_config = pydantic.ConfigDict(frozen=True, arbitrary_types_allowed=True)

    table: TidyTable
    failures: Tuple[RowFailure, ...] = ()


class PeriodogramBatch(BaseModel):
    """Periodograms of several subjects and the subjects that failed."""

    model_config = pydantic.ConfigDict(frozen=True)

    periodograms: Tuple[Periodogram, ...]
    failures: Tuple[SubjectFailure, ...] = ()
