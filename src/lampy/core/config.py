"""Configuration module for lampy."""

import logging
from importlib import metadata
from typing import FrozenSet

import pydantic


def get_version() -> str:
    """Return lampy version."""
    try:
        return metadata.version("lampy")
    except metadata.PackageNotFoundError:
        return "Version unknown"


def get_logger() -> logging.Logger:
    """Gets the lampy logger."""
    logger = logging.getLogger("lampy")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)s - %(funcName)s - %(message)s",  # noqa: E501
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


class Settings(pydantic.BaseModel):
    """Options recognized by the analysis pipeline.

    Attributes:
        id_column_name: Name of the subject identifier column in tidy tables.
        time_column_name: Name of the timestamp column in tidy tables.
        bin_interval_minutes: Binning interval used by presentation layers. It is
            recorded with the processing parameters but not applied here.
        period_min_hours: Shortest period scanned by the periodogram.
        period_max_hours: Longest period scanned by the periodogram.
        oversampling_factor: Multiplier for the density of scanned frequencies.
        significance_level: Alpha used for the periodogram significance threshold.
        subject_filter: Subjects to retain. An empty set retains all subjects.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    id_column_name: str = "ID"
    time_column_name: str = "Time"
    bin_interval_minutes: int = pydantic.Field(default=30, ge=1)
    period_min_hours: float = pydantic.Field(default=18.0, gt=0)
    period_max_hours: float = pydantic.Field(default=30.0, gt=0)
    oversampling_factor: int = pydantic.Field(default=4, ge=1)
    significance_level: float = pydantic.Field(default=0.01, gt=0, lt=1)
    subject_filter: FrozenSet[str] = frozenset()

    @pydantic.model_validator(mode="after")
    def validate_period_range(self) -> "Settings":
        """Validate that the period search window is not empty.

        Returns:
            The validated settings.

        Raises:
            ValueError: If period_min_hours is not smaller than period_max_hours.
        """
        if self.period_min_hours >= self.period_max_hours:
            raise ValueError(
                "period_min_hours must be smaller than period_max_hours, got "
                f"{self.period_min_hours} and {self.period_max_hours}."
            )
        return self

    @pydantic.model_validator(mode="after")
    def validate_column_names(self) -> "Settings":
        """Validate that the tidy column names are distinct and non-empty."""
        if not self.id_column_name or not self.time_column_name:
            raise ValueError("Column names must not be empty.")
        if self.id_column_name == self.time_column_name:
            raise ValueError("id_column_name and time_column_name must differ.")
        return self
