"""Reshape wide monitor records into a long-format activity table."""

from typing import Sequence

import polars as pl

from lampy.core import config, exceptions, models

logger = config.get_logger()


def tidy_records(
    records: Sequence[models.RawRecord], subject_ids: Sequence[str]
) -> models.TidyTable:
    """Convert raw records into a tidy table.

    One row is emitted per record per activity column. Rows follow the records in
    input order and, within a record, the activity columns in column order, so R
    records with C columns give exactly R x C rows.

    Args:
        records: The parsed monitor records, in input order.
        subject_ids: The identifier of each activity column, in column order.

    Returns:
        The tidy table with columns 'subject_id', 'timestamp' and 'activity'.

    Raises:
        InconsistentColumnCountError: If a record does not have one reading per
            subject identifier.
        UnsortedTimestampsError: If the record timestamps decrease.
    """
    n_subjects = len(subject_ids)
    for record in records:
        if len(record.activity) != n_subjects:
            raise exceptions.InconsistentColumnCountError(
                f"Record on line {record.line_number} has {len(record.activity)} "
                f"readings for {n_subjects} subjects."
            )

    for earlier, later in zip(records, records[1:]):
        if later.timestamp < earlier.timestamp:
            raise exceptions.UnsortedTimestampsError(
                f"Timestamp on line {later.line_number} ({later.timestamp}) is "
                f"earlier than on line {earlier.line_number} ({earlier.timestamp})."
            )

    if not records or not subject_ids:
        return models.TidyTable(data=pl.DataFrame(schema=models.TIDY_SCHEMA))

    wide = pl.DataFrame(
        {
            "timestamp": [record.timestamp for record in records],
            "subject_id": [list(subject_ids)] * len(records),
            "activity": [list(record.activity) for record in records],
        },
        schema={
            "timestamp": models.TIDY_SCHEMA["timestamp"],
            "subject_id": pl.List(pl.Utf8),
            "activity": pl.List(pl.Float64),
        },
    )
    tidy = wide.explode(["subject_id", "activity"]).select(
        "subject_id", "timestamp", "activity"
    )

    logger.debug(
        "Tidied %s records into %s samples for %s subjects.",
        len(records),
        tidy.height,
        n_subjects,
    )
    return models.TidyTable(data=tidy)
