"""Tests for the on-demand daily generation script's command line."""

import pytest

from scripts import run_daily_generation


@pytest.mark.unit
def test_defaults_to_every_task() -> None:
    """Test no arguments backfills every active task."""
    args = run_daily_generation.build_parser().parse_args([])

    assert args.task is None


@pytest.mark.unit
def test_task_option_selects_one_task() -> None:
    """Test --task names the single care task to backfill."""
    args = run_daily_generation.build_parser().parse_args(["--task", "42"])

    assert args.task == "42"


@pytest.mark.unit
def test_task_option_requires_a_value() -> None:
    """Test a bare --task is a usage error."""
    with pytest.raises(SystemExit) as exc_info:
        run_daily_generation.build_parser().parse_args(["--task"])

    assert exc_info.value.code == 2
