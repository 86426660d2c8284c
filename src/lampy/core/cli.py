"""CLI for lampy."""

import logging
import pathlib
from typing import List, Optional

import pydantic
import typer

from lampy.core import config, exceptions

logger = config.get_logger()
app = typer.Typer(
    help="Run the lampy circadian activity pipeline.",
)


def version_check(version: bool) -> None:
    """Print the current version of lampy and exit."""
    if version:
        typer.echo(f"Lampy version: {config.get_version()}")
        raise typer.Exit()


@app.command()
def main(
    input: pathlib.Path = typer.Argument(
        ...,
        help="Path to a monitor export (.txt) or a tidy table (.csv, .parquet).",
        exists=True,
    ),
    output: pathlib.Path = typer.Option(
        None,
        "-o",
        "--output",
        help="Path where the summary will be saved. Supports .csv and .parquet. "
        "Periodograms are saved next to it.",
    ),
    id_column: str = typer.Option(
        "ID", "--id-column", help="Name of the subject column of tidy tables."
    ),
    time_column: str = typer.Option(
        "Time", "--time-column", help="Name of the time column of tidy tables."
    ),
    period_min: float = typer.Option(
        18.0, "--period-min", help="Shortest period to scan, in hours."
    ),
    period_max: float = typer.Option(
        30.0, "--period-max", help="Longest period to scan, in hours."
    ),
    oversampling: int = typer.Option(
        4,
        "--oversampling",
        help="Oversampling factor of the periodogram. Must be at least 1.",
        min=1,
    ),
    significance: float = typer.Option(
        0.01,
        "--significance",
        help="Significance level of the periodogram peak.",
    ),
    bin_interval: int = typer.Option(
        30,
        "--bin-interval",
        help="Binning interval in minutes, recorded with the processing parameters.",
        min=1,
    ),
    subject: List[str] = typer.Option(
        None,
        "-s",
        "--subject",
        help="Subject to analyse. Use multiple times for multiple subjects: "
        "'-s Subject_1 -s Subject_2'. Defaults to all subjects.",
    ),
    subject_name: List[str] = typer.Option(
        None,
        "--subject-name",
        help="Name of a monitor position, in column order. Give one per activity "
        "column of a monitor export. Defaults to Subject_1, Subject_2, ...",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "-w",
        "--workers",
        help="Number of threads used for the periodograms.",
        min=1,
    ),
    verbosity: bool = typer.Option(
        False,
        "-v",
        "--verbosity",
        help="Determines the level of verbosity. Use -v for DEBUG. "
        "Defaults to INFO if not included.",
    ),
    version: bool = typer.Option(
        False,
        "-V",
        "--version",
        help="Print the current version of lampy and exit.",
        is_eager=True,
        callback=version_check,
    ),
) -> None:
    """Run lampy orchestrator with command line arguments."""
    from lampy.core import orchestrator

    log_level = logging.INFO
    if verbosity:
        log_level = logging.DEBUG
    logger.setLevel(log_level)

    try:
        settings = config.Settings(
            id_column_name=id_column,
            time_column_name=time_column,
            bin_interval_minutes=bin_interval,
            period_min_hours=period_min,
            period_max_hours=period_max,
            oversampling_factor=oversampling,
            significance_level=significance,
            subject_filter=frozenset(subject or ()),
        )
    except pydantic.ValidationError as e:
        raise typer.BadParameter(str(e))
    if subject_name and len(set(subject_name)) != len(subject_name):
        raise typer.BadParameter(
            "Subject names must be unique.", param_hint="--subject-name"
        )

    logger.debug("Running lampy. arguments given: %s", locals())
    try:
        results = orchestrator.run(
            input=input,
            output=output,
            settings=settings,
            subject_ids=subject_name or None,
            max_workers=workers,
            verbosity=log_level,
        )
    except (
        exceptions.InconsistentColumnCountError,
        exceptions.EmptyInputError,
        exceptions.UnsortedTimestampsError,
        exceptions.MissingColumnError,
        exceptions.InvalidFileTypeError,
    ) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    for periodogram in results.periodograms:
        typer.echo(
            f"{periodogram.subject_id}: dominant period "
            f"{periodogram.dominant_period:.2f} h (p = {periodogram.p_value:.3g})"
        )
    for failure in results.subject_failures:
        typer.echo(f"{failure.subject_id}: {failure.message}", err=True)
    if results.row_failures:
        typer.echo(f"{len(results.row_failures)} rows could not be parsed.", err=True)


if __name__ == "__main__":
    app()
