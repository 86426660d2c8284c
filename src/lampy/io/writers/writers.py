"""Module containing the output classes for writing data to files."""

import datetime
import json
import pathlib
from typing import Any, Dict, Optional, Tuple, Union

import polars as pl
import pydantic

from lampy.core import config, exceptions, models

VALID_FILE_TYPES = (".csv", ".parquet")
TIDY_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = config.get_logger()


def _validate_suffix(output: pathlib.Path) -> None:
    """Raise InvalidFileTypeError unless output is a .csv or .parquet path."""
    if output.suffix not in VALID_FILE_TYPES:
        raise exceptions.InvalidFileTypeError(
            f"The extension: {output.suffix} is not supported."
            "Please save the file as .csv or .parquet",
        )


def _write_data_frame(data_frame: pl.DataFrame, output: pathlib.Path) -> None:
    """Write a data frame in the format given by the output suffix."""
    output.parent.mkdir(parents=True, exist_ok=True)
    if output.suffix == ".csv":
        data_frame.write_csv(output, separator=",")
    elif output.suffix == ".parquet":
        data_frame.write_parquet(output)


def tidy_to_data_frame(
    table: models.TidyTable,
    id_column: str = "ID",
    time_column: str = "Time",
    activity_column: str = "Activity",
) -> pl.DataFrame:
    """Convert a tidy table to the interchange layout.

    Args:
        table: The tidy table.
        id_column: Name of the subject identifier column.
        time_column: Name of the timestamp column.
        activity_column: Name of the activity column.

    Returns:
        A data frame with the time as 'YYYY-MM-DD HH:MM:SS' UTC strings, the subject
        identifier and the activity, in table order.
    """
    return table.data.select(
        pl.col("timestamp").dt.strftime(TIDY_TIME_FORMAT).alias(time_column),
        pl.col("subject_id").alias(id_column),
        pl.col("activity").alias(activity_column),
    )


def write_tidy(
    table: models.TidyTable,
    output: Union[pathlib.Path, str],
    id_column: str = "ID",
    time_column: str = "Time",
    activity_column: str = "Activity",
) -> None:
    """Save a tidy table in the interchange layout as a csv or parquet file.

    Args:
        table: The tidy table to save.
        output: The path and file name, ending in .csv or .parquet.
        id_column: Name of the subject identifier column.
        time_column: Name of the timestamp column.
        activity_column: Name of the activity column.

    Raises:
        InvalidFileTypeError: If the output does not end in .csv or .parquet.
    """
    output = pathlib.Path(output)
    _validate_suffix(output)
    _write_data_frame(
        tidy_to_data_frame(table, id_column, time_column, activity_column), output
    )
    logger.debug("Tidy table saved in: %s", output)


def summary_to_data_frame(summary: Tuple[models.SummaryRow, ...]) -> pl.DataFrame:
    """Convert summary rows to a data frame, undefined statistics become null."""

    def _value(statistic: Union[float, models.UndefinedStatistic]) -> Optional[float]:
        return None if statistic is models.UNDEFINED else statistic

    return pl.DataFrame(
        {
            "subject_id": [row.subject_id for row in summary],
            "total_activity": [row.total_activity for row in summary],
            "peak_activity": [_value(row.peak_activity) for row in summary],
            "mean_activity": [_value(row.mean_activity) for row in summary],
            "n_samples": [row.n_samples for row in summary],
            "n_missing": [row.n_missing for row in summary],
        },
        schema={
            "subject_id": pl.Utf8,
            "total_activity": pl.Float64,
            "peak_activity": pl.Float64,
            "mean_activity": pl.Float64,
            "n_samples": pl.Int64,
            "n_missing": pl.Int64,
        },
    )


class PipelineResults(pydantic.BaseModel):
    """Dataclass containing results of orchestrator.run()."""

    model_config = pydantic.ConfigDict(frozen=True)

    summary: Tuple[models.SummaryRow, ...]
    periodograms: Tuple[models.Periodogram, ...]
    row_failures: Tuple[models.RowFailure, ...] = ()
    subject_failures: Tuple[models.SubjectFailure, ...] = ()
    processing_params: Optional[Dict[str, Any]] = None

    @property
    def dominant_periods(self) -> Dict[str, float]:
        """Dominant period of each analysed subject, in hours."""
        return {
            periodogram.subject_id: periodogram.dominant_period
            for periodogram in self.periodograms
        }

    def periodogram_data_frame(self) -> pl.DataFrame:
        """Stack the periodogram curves of all subjects into one data frame."""
        if not self.periodograms:
            return pl.DataFrame(
                schema={
                    "subject_id": pl.Utf8,
                    "period_hours": pl.Float64,
                    "power": pl.Float64,
                    "significant": pl.Boolean,
                }
            )
        return pl.concat(
            [periodogram.to_data_frame() for periodogram in self.periodograms]
        )

    def save_results(self, output: pathlib.Path) -> None:
        """Convert to polars and save the results as csv or parquet files.

        The summary is saved to output, the periodogram curves next to it with a
        '_periodogram' suffix on the file name.

        Args:
            output: The path and file name of the summary to be saved, as either a
                csv or parquet file.
        """
        logger.debug("Saving results.")
        self.validate_output(output=output)

        _write_data_frame(summary_to_data_frame(self.summary), output)
        periodogram_path = output.with_name(f"{output.stem}_periodogram{output.suffix}")
        _write_data_frame(self.periodogram_data_frame(), periodogram_path)

        logger.info("Results saved in: %s and %s", output, periodogram_path)

        if self.processing_params:
            self.save_config_as_json(output)

    def save_config_as_json(self, output_path: pathlib.Path) -> None:
        """Save processing parameters as a JSON configuration file.

        Args:
            output_path: Path where the data file was saved. The JSON file will use
                the same name but with .json extension.
        """
        if not self.processing_params:
            logger.warning("No processing parameters to save as JSON")
            return

        config_data = {
            "processing_time": datetime.datetime.now().isoformat(timespec="seconds"),
            "lampy_version": config.get_version(),
            "processing_parameters": self.processing_params,
            "row_failures": [failure.model_dump() for failure in self.row_failures],
            "subject_failures": [
                failure.model_dump() for failure in self.subject_failures
            ],
        }

        config_path = output_path.with_suffix(".json")

        with open(config_path, "w") as f:
            json.dump(config_data, f, indent=4)

        logger.debug("Configuration saved in: %s", config_path)

    @classmethod
    def validate_output(cls, output: pathlib.Path) -> None:
        """Validates that the output path is a valid format.

        Args:
            output: the name of the file to be saved, and the directory it will
                be saved in. Must be a .csv or .parquet file.

        Raises:
            InvalidFileTypeError:If the output file path ends with any extension other
                    than csv or parquet.
        """
        _validate_suffix(output)
