"""Functions to read monitor exports and tidy tables from files."""

import datetime
import math
import pathlib
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import polars as pl

from lampy.core import config, exceptions, models

logger = config.get_logger()

DATE_COLUMN = 1
TIME_COLUMN = 2
FIRST_ACTIVITY_COLUMN = 8

RAW_TIMESTAMP_FORMATS = (
    "%d %b %Y %H:%M:%S",
    "%d %b %y %H:%M:%S",
    "%d %B %Y %H:%M:%S",
    "%d %B %y %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%y %H:%M:%S",
    "%d-%m-%Y %H:%M:%S",
    "%d-%m-%y %H:%M:%S",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%y %H:%M:%S",
)
TIDY_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%d %H:%M:%S%.f",
    "%Y-%m-%dT%H:%M:%S%.f",
    "%Y-%m-%dT%H:%M:%S%.fZ",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M",
)
TIDY_OFFSET_TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M:%S%:z",
    "%Y-%m-%d %H:%M:%S%:z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S%.f%:z",
    "%Y-%m-%d %H:%M:%S%.f%:z",
)
VALID_TIDY_FILE_TYPES = (".csv", ".parquet")


def read_lam_file(
    file_name: Union[pathlib.Path, str],
    subject_ids: Optional[Sequence[str]] = None,
) -> models.RawReadResult:
    """Read a locomotor activity monitor export from a file.

    Args:
        file_name: The tab-delimited monitor export to read.
        subject_ids: Optional identifiers for the activity columns, in column
            order. Defaults to Subject_1, Subject_2, ...

    Returns:
        The parsed records and the rows that failed to parse.

    Raises:
        InconsistentColumnCountError: If the rows do not all have the same number
            of activity columns, or subject_ids does not match that number.
        EmptyInputError: If the file has no data rows.
    """
    logger.debug("Reading monitor export: %s", file_name)
    with open(file_name, encoding="utf-8") as lines:
        return parse_lam_lines(lines, subject_ids=subject_ids)


def parse_lam_lines(
    lines: Iterable[str],
    subject_ids: Optional[Sequence[str]] = None,
) -> models.RawReadResult:
    """Parse the lines of a monitor export into raw records.

    Column 2 and 3 (1-based) hold the date and time of the reading, columns 9
    onward hold one activity count per monitored position. Blank lines are
    skipped. Rows with a malformed timestamp are reported in the result and do not
    stop the remaining rows from being parsed.

    Args:
        lines: The lines of the export, without header.
        subject_ids: Optional identifiers for the activity columns, in column
            order. Defaults to Subject_1, Subject_2, ...

    Returns:
        The parsed records in input order and the rows that failed to parse.

    Raises:
        InconsistentColumnCountError: If the rows do not all have the same number
            of activity columns, or subject_ids does not match that number.
        EmptyInputError: If there are no data rows.
        ValueError: If subject_ids contains duplicates.
    """
    records: List[models.RawRecord] = []
    failures: List[models.RowFailure] = []
    n_activity_columns: Optional[int] = None

    for line_number, line in enumerate(lines, start=1):
        line = line.rstrip("\r\n")
        if not line.strip():
            continue
        cells = line.split("\t")

        row_activity_columns = max(len(cells) - FIRST_ACTIVITY_COLUMN, 0)
        if n_activity_columns is None:
            if row_activity_columns == 0:
                raise exceptions.InconsistentColumnCountError(
                    f"Line {line_number} has {len(cells)} columns, expected at "
                    f"least {FIRST_ACTIVITY_COLUMN + 1}."
                )
            n_activity_columns = row_activity_columns
        elif row_activity_columns != n_activity_columns:
            raise exceptions.InconsistentColumnCountError(
                f"Line {line_number} has {row_activity_columns} activity columns, "
                f"expected {n_activity_columns}."
            )

        try:
            timestamp = parse_timestamp(cells[DATE_COLUMN], cells[TIME_COLUMN])
        except exceptions.MalformedTimestampError as exc_info:
            failures.append(
                models.RowFailure(
                    line_number=line_number,
                    line=line,
                    error_kind="MalformedTimestamp",
                    message=str(exc_info),
                )
            )
            continue

        records.append(
            models.RawRecord(
                line_number=line_number,
                timestamp=timestamp,
                activity=tuple(
                    _parse_activity(cell) for cell in cells[FIRST_ACTIVITY_COLUMN:]
                ),
            )
        )

    if n_activity_columns is None:
        raise exceptions.EmptyInputError("The monitor export contains no data rows.")

    resolved_ids = _resolve_subject_ids(n_activity_columns, subject_ids)
    logger.debug(
        "Parsed %s records for %s subjects, %s rows failed.",
        len(records),
        len(resolved_ids),
        len(failures),
    )
    return models.RawReadResult(
        subject_ids=resolved_ids, records=tuple(records), failures=tuple(failures)
    )


def parse_timestamp(date: str, time: str) -> datetime.datetime:
    """Combine a day-month-year date and an hour:minute:second time.

    Args:
        date: The date field, e.g. '1 Jan 20' or '01/01/2020'.
        time: The time field, e.g. '13:05:00'.

    Returns:
        The timestamp in UTC.

    Raises:
        MalformedTimestampError: If the pair does not match any accepted pattern.
    """
    combined = f"{date.strip()} {time.strip()}"
    for timestamp_format in RAW_TIMESTAMP_FORMATS:
        try:
            parsed = datetime.datetime.strptime(combined, timestamp_format)
        except ValueError:
            continue
        return parsed.replace(tzinfo=datetime.timezone.utc)
    raise exceptions.MalformedTimestampError(
        f"Could not parse '{combined}' as a day-month-year hour:minute:second "
        "timestamp."
    )


def _parse_activity(cell: str) -> Optional[float]:
    """Convert an activity cell to a float, None for empty or non-numeric cells."""
    try:
        value = float(cell)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def _resolve_subject_ids(
    n_activity_columns: int, subject_ids: Optional[Sequence[str]]
) -> Tuple[str, ...]:
    """Assign an identifier to every activity column.

    Args:
        n_activity_columns: Number of activity columns in the export.
        subject_ids: Identifiers supplied by the caller, if any.

    Returns:
        One identifier per activity column, in column order.

    Raises:
        InconsistentColumnCountError: If the number of supplied identifiers does not
            match the number of activity columns.
        ValueError: If the supplied identifiers are not unique.
    """
    if subject_ids is None:
        return tuple(f"Subject_{rank}" for rank in range(1, n_activity_columns + 1))

    if len(subject_ids) != n_activity_columns:
        raise exceptions.InconsistentColumnCountError(
            f"{len(subject_ids)} subject identifiers were given for "
            f"{n_activity_columns} activity columns."
        )
    if len(set(subject_ids)) != len(subject_ids):
        raise ValueError("Subject identifiers must be unique.")
    return tuple(subject_ids)


def read_tidy_file(
    file_name: Union[pathlib.Path, str],
    id_column: str = "ID",
    time_column: str = "Time",
    activity_column: str = "Activity",
) -> models.TidyReadResult:
    """Read an already tidied activity table.

    Rows whose time cannot be parsed are reported as failures and left out of the
    table. Activity values that are empty, non-numeric or not finite are missing.

    Args:
        file_name: The .csv or .parquet file to read.
        id_column: Name of the subject identifier column.
        time_column: Name of the timestamp column.
        activity_column: Name of the activity column.

    Returns:
        The tidy table and the rows that were rejected.

    Raises:
        InvalidFileTypeError: If the file is not a .csv or .parquet file.
        MissingColumnError: If a required column is missing.
        EmptyInputError: If the file has no data rows.
    """
    file_name = pathlib.Path(file_name)
    logger.debug("Reading tidy table: %s", file_name)

    if file_name.suffix == ".csv":
        raw = pl.read_csv(file_name, infer_schema=False)
    elif file_name.suffix == ".parquet":
        raw = pl.read_parquet(file_name)
    else:
        raise exceptions.InvalidFileTypeError(
            f"File type {file_name.suffix} is not supported, use one of "
            f"{VALID_TIDY_FILE_TYPES}."
        )

    header_offset = 2 if file_name.suffix == ".csv" else 1
    return tidy_from_data_frame(
        raw,
        id_column=id_column,
        time_column=time_column,
        activity_column=activity_column,
        first_line_number=header_offset,
    )


def tidy_from_data_frame(
    data_frame: pl.DataFrame,
    id_column: str = "ID",
    time_column: str = "Time",
    activity_column: str = "Activity",
    first_line_number: int = 1,
) -> models.TidyReadResult:
    """Convert an interchange-format data frame to a tidy table.

    Within each subject, rows are put in timestamp order; rows with equal
    timestamps keep their input order.

    Args:
        data_frame: Data frame with identifier, time and activity columns. Time may
            be a datetime column or ISO-8601 style strings, optionally with
            fractional seconds and a UTC offset. Fractions are truncated.
        id_column: Name of the subject identifier column.
        time_column: Name of the timestamp column.
        activity_column: Name of the activity column.
        first_line_number: Line number reported for the first row.

    Returns:
        The tidy table and the rows that were rejected.

    Raises:
        MissingColumnError: If a required column is missing.
        EmptyInputError: If the data frame has no rows.
    """
    missing = [
        name
        for name in (id_column, time_column, activity_column)
        if name not in data_frame.columns
    ]
    if missing:
        raise exceptions.MissingColumnError(
            f"Tidy table is missing required columns: {missing}"
        )
    if data_frame.is_empty():
        raise exceptions.EmptyInputError("The tidy table contains no rows.")

    frame = data_frame.select(
        subject_id=pl.col(id_column).cast(pl.Utf8),
        raw_time=pl.col(time_column),
        activity=pl.col(activity_column).cast(pl.Float64, strict=False),
    ).with_row_index("row", offset=first_line_number)
    frame = frame.with_columns(
        timestamp=_time_expression(frame.schema["raw_time"]).dt.truncate("1s"),
        activity=pl.when(pl.col("activity").is_finite()).then(pl.col("activity")),
        order=pl.col("row").min().over("subject_id"),
    )

    rejected = frame.filter(
        pl.col("timestamp").is_null() | pl.col("subject_id").is_null()
    )
    failures = tuple(
        _tidy_row_failure(row) for row in rejected.iter_rows(named=True)
    )
    for failure in failures:
        logger.warning("Skipping row %s: %s", failure.line_number, failure.message)

    table = (
        frame.filter(
            pl.col("timestamp").is_not_null() & pl.col("subject_id").is_not_null()
        )
        .sort(["order", "timestamp"], maintain_order=True)
        .select("subject_id", "timestamp", "activity")
    )
    return models.TidyReadResult(
        table=models.TidyTable(data=table), failures=failures
    )


def _tidy_row_failure(row: dict) -> models.RowFailure:
    """Describe why a tidy row was rejected."""
    line = f"{row['subject_id']},{row['raw_time']},{row['activity']}"
    if row["subject_id"] is None:
        return models.RowFailure(
            line_number=row["row"],
            line=line,
            error_kind="MissingSubjectId",
            message="Row has no subject identifier.",
        )
    return models.RowFailure(
        line_number=row["row"],
        line=line,
        error_kind="MalformedTimestamp",
        message=f"Could not parse '{row['raw_time']}' as an ISO-8601 timestamp.",
    )


def _time_expression(dtype: pl.DataType) -> pl.Expr:
    """Build the expression converting the raw time column to UTC datetimes."""
    if isinstance(dtype, pl.Datetime):
        if dtype.time_zone is None:
            return pl.col("raw_time").dt.replace_time_zone("UTC")
        return pl.col("raw_time").dt.convert_time_zone("UTC")

    as_text = pl.col("raw_time").cast(pl.Utf8).str.strip_chars()
    naive = [
        as_text.str.to_datetime(timestamp_format, time_unit="us", strict=False)
        for timestamp_format in TIDY_TIMESTAMP_FORMATS
    ]
    # Offsets parse to UTC; drop the zone so all candidates share one dtype.
    offset = [
        as_text.str.to_datetime(timestamp_format, time_unit="us", strict=False)
        .dt.replace_time_zone(None)
        for timestamp_format in TIDY_OFFSET_TIMESTAMP_FORMATS
    ]
    return pl.coalesce(naive + offset).dt.replace_time_zone("UTC")
