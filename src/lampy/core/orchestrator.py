"""Python based runner."""

import logging
import pathlib
from typing import List, Optional, Sequence, Tuple, Union

from lampy.core import computations, config, exceptions, models
from lampy.io.readers import readers
from lampy.io.writers import writers
from lampy.processing import periodogram, tidy

logger = config.get_logger()

RAW_FILE_TYPES = (".txt",)
TIDY_FILE_TYPES = (".csv", ".parquet")


def run(
    input: Union[pathlib.Path, str],
    output: Optional[Union[pathlib.Path, str]] = None,
    settings: Optional[config.Settings] = None,
    subject_ids: Optional[Sequence[str]] = None,
    max_workers: Optional[int] = None,
    verbosity: int = logging.WARNING,
) -> writers.PipelineResults:
    """Runs the main processing steps of lampy on a single file.

    Monitor exports (.txt) are read and tidied; tidy tables (.csv, .parquet) are
    read directly. The retained subjects are summarized and their periodograms are
    computed in parallel. Rows that fail to parse and subjects without enough data
    are reported in the results instead of stopping the run.

    Args:
        input: Path to a monitor export (.txt) or a tidy table (.csv, .parquet).
        output: Path to save the summary to, as a .csv or .parquet file. The
            periodograms and processing parameters are saved next to it.
        settings: Column names, subject filter and periodogram parameters. Defaults
            to Settings().
        subject_ids: Identifiers of the monitor positions, in column order. Only used
            for monitor exports; defaults to Subject_1, Subject_2, ...
        max_workers: Number of threads used for the periodograms.
        verbosity: The logging level for the logger.

    Returns:
        The summary rows, periodograms and failures as a PipelineResults object.

    Raises:
        InvalidFileTypeError: If the input or output file type is not supported.
        InconsistentColumnCountError: If the monitor export rows differ in their
            number of activity columns.
        EmptyInputError: If the input has no data rows.
    """
    logger.setLevel(verbosity)
    settings = settings or config.Settings()

    input = pathlib.Path(input)
    output = pathlib.Path(output) if output is not None else None
    if output is not None:
        writers.PipelineResults.validate_output(output=output)

    table, row_failures = _load_table(input, settings, subject_ids)
    results = analyse_table(
        table, settings=settings, max_workers=max_workers, row_failures=row_failures
    )
    results = results.model_copy(
        update={
            "processing_params": {
                **(results.processing_params or {}),
                "input_file": str(input),
            }
        }
    )

    if output is not None:
        try:
            results.save_results(output=output)
        except (
            exceptions.InvalidFileTypeError,
            PermissionError,
            FileExistsError,
        ) as exc_info:
            # Allowed to pass to recover in Jupyter Notebook scenarios.
            logger.error(
                "Could not save output due to: %s. Call save_results on the output "
                "object with a correct filename to save these results.",
                exc_info,
            )
    logger.info("Processing for %s completed successfully.", input.stem)
    return results


def analyse_table(
    table: models.TidyTable,
    settings: Optional[config.Settings] = None,
    max_workers: Optional[int] = None,
    row_failures: Sequence[models.RowFailure] = (),
) -> writers.PipelineResults:
    """Summarize a tidy table and compute the periodograms of its subjects.

    Args:
        table: The tidy activity table.
        settings: Subject filter and periodogram parameters. Defaults to Settings().
        max_workers: Number of threads used for the periodograms.
        row_failures: Failures from reading the table, passed on to the results.

    Returns:
        The summary rows, periodograms and failures as a PipelineResults object.
    """
    settings = settings or config.Settings()

    series = computations.select_subjects(table, settings.subject_filter)
    summary = [computations.summarize_series(subject) for subject in series]
    batch = periodogram.compute_periodograms(
        series, settings=settings, max_workers=max_workers
    )

    for failure in batch.failures:
        logger.warning(
            "No periodogram for %s: %s", failure.subject_id, failure.message
        )

    return writers.PipelineResults(
        summary=tuple(summary),
        periodograms=batch.periodograms,
        row_failures=tuple(row_failures),
        subject_failures=batch.failures,
        processing_params=_processing_params(settings),
    )


def _load_table(
    input: pathlib.Path,
    settings: config.Settings,
    subject_ids: Optional[Sequence[str]],
) -> Tuple[models.TidyTable, List[models.RowFailure]]:
    """Read the input file into a tidy table.

    Raises:
        InvalidFileTypeError: If the input is neither a monitor export nor a tidy
            table.
    """
    if input.suffix in RAW_FILE_TYPES:
        raw = readers.read_lam_file(input, subject_ids=subject_ids)
        return tidy.tidy_records(raw.records, raw.subject_ids), list(raw.failures)

    if input.suffix in TIDY_FILE_TYPES:
        if subject_ids is not None:
            logger.warning("subject_ids are ignored for tidy input files.")
        tidy_result = readers.read_tidy_file(
            input,
            id_column=settings.id_column_name,
            time_column=settings.time_column_name,
        )
        return tidy_result.table, list(tidy_result.failures)

    raise exceptions.InvalidFileTypeError(
        f"File type {input.suffix} is not supported. Use one of "
        f"{RAW_FILE_TYPES + TIDY_FILE_TYPES}."
    )


def _processing_params(settings: config.Settings) -> dict:
    """Processing parameters in a JSON serializable form."""
    params = settings.model_dump()
    params["subject_filter"] = sorted(settings.subject_filter)
    params["min_samples"] = periodogram.MIN_SAMPLES
    return params
