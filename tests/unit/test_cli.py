"""Test the lampy cli."""

import logging
import pathlib

import pytest
import pytest_mock
from typer import testing

from lampy.core import cli, config, exceptions, orchestrator
from lampy.io.writers import writers


@pytest.fixture
def create_typer_cli_runner() -> testing.CliRunner:
    """Create a Typer CLI runner."""
    return testing.CliRunner()


@pytest.fixture
def empty_results() -> writers.PipelineResults:
    """Results without subjects."""
    return writers.PipelineResults(summary=(), periodograms=())


def test_main_default(
    mocker: pytest_mock.MockerFixture,
    sample_data_lam: pathlib.Path,
    create_typer_cli_runner: testing.CliRunner,
    empty_results: writers.PipelineResults,
) -> None:
    """Test cli with only necessary arguments."""
    mock_run = mocker.patch.object(orchestrator, "run", return_value=empty_results)

    result = create_typer_cli_runner.invoke(cli.app, [str(sample_data_lam)])

    assert result.exit_code == 0
    mock_run.assert_called_once_with(
        input=sample_data_lam,
        output=None,
        settings=config.Settings(),
        subject_ids=None,
        max_workers=None,
        verbosity=logging.INFO,
    )


def test_main_with_options(
    mocker: pytest_mock.MockerFixture,
    sample_data_lam: pathlib.Path,
    tmp_path: pathlib.Path,
    create_typer_cli_runner: testing.CliRunner,
    empty_results: writers.PipelineResults,
) -> None:
    """Test cli with all periodogram and subject options."""
    test_output = tmp_path / "test.csv"
    mock_run = mocker.patch.object(orchestrator, "run", return_value=empty_results)

    result = create_typer_cli_runner.invoke(
        cli.app,
        [
            str(sample_data_lam),
            "--output",
            str(test_output),
            "--period-min",
            "20",
            "--period-max",
            "28",
            "--oversampling",
            "8",
            "--significance",
            "0.05",
            "--bin-interval",
            "60",
            "-s",
            "B",
            "-s",
            "C",
            "--subject-name",
            "A",
            "--subject-name",
            "B",
            "--subject-name",
            "C",
            "--subject-name",
            "D",
            "-w",
            "2",
            "-v",
        ],
    )

    assert result.exit_code == 0
    mock_run.assert_called_once_with(
        input=sample_data_lam,
        output=test_output,
        settings=config.Settings(
            period_min_hours=20,
            period_max_hours=28,
            oversampling_factor=8,
            significance_level=0.05,
            bin_interval_minutes=60,
            subject_filter=frozenset({"B", "C"}),
        ),
        subject_ids=["A", "B", "C", "D"],
        max_workers=2,
        verbosity=logging.DEBUG,
    )


def test_main_tidy_columns(
    mocker: pytest_mock.MockerFixture,
    sample_data_lam: pathlib.Path,
    create_typer_cli_runner: testing.CliRunner,
    empty_results: writers.PipelineResults,
) -> None:
    """Test the tidy column names are passed through the settings."""
    mock_run = mocker.patch.object(orchestrator, "run", return_value=empty_results)

    create_typer_cli_runner.invoke(
        cli.app,
        [str(sample_data_lam), "--id-column", "Who", "--time-column", "When"],
    )

    settings = mock_run.call_args.kwargs["settings"]
    assert settings.id_column_name == "Who"
    assert settings.time_column_name == "When"


def test_main_invalid_period_range(
    sample_data_lam: pathlib.Path, create_typer_cli_runner: testing.CliRunner
) -> None:
    """Test an empty period range is a usage error."""
    result = create_typer_cli_runner.invoke(
        cli.app, [str(sample_data_lam), "--period-min", "30", "--period-max", "18"]
    )

    assert result.exit_code == 2


def test_main_oversampling_below_one(
    sample_data_lam: pathlib.Path, create_typer_cli_runner: testing.CliRunner
) -> None:
    """Test an oversampling factor below one is rejected."""
    result = create_typer_cli_runner.invoke(
        cli.app, [str(sample_data_lam), "--oversampling", "0"]
    )

    assert result.exit_code != 0


def test_main_structural_error(
    mocker: pytest_mock.MockerFixture,
    sample_data_lam: pathlib.Path,
    create_typer_cli_runner: testing.CliRunner,
) -> None:
    """Test a structural input error exits with status 1."""
    mocker.patch.object(
        orchestrator,
        "run",
        side_effect=exceptions.InconsistentColumnCountError("Bad columns."),
    )

    result = create_typer_cli_runner.invoke(cli.app, [str(sample_data_lam)])

    assert result.exit_code == 1
    assert "Bad columns." in result.output


def test_main_missing_input(create_typer_cli_runner: testing.CliRunner) -> None:
    """Test a missing input file is a usage error."""
    result = create_typer_cli_runner.invoke(cli.app, ["does_not_exist.txt"])

    assert result.exit_code == 2


def test_version(create_typer_cli_runner: testing.CliRunner) -> None:
    """Test the version option."""
    result = create_typer_cli_runner.invoke(cli.app, ["--version"])

    assert result.exit_code == 0
    assert "Lampy version" in result.output


def test_main_duplicate_subject_names(
    mocker: pytest_mock.MockerFixture,
    sample_data_lam: pathlib.Path,
    create_typer_cli_runner: testing.CliRunner,
) -> None:
    """Test repeated subject names are a usage error, not a crash."""
    mock_run = mocker.patch.object(orchestrator, "run")

    result = create_typer_cli_runner.invoke(
        cli.app,
        [str(sample_data_lam), "--subject-name", "A", "--subject-name", "A"],
    )

    assert result.exit_code == 2
    assert isinstance(result.exception, SystemExit)
    mock_run.assert_not_called()
