"""Cricket arithmetic: overs notation, rates, projections, NRR."""

from __future__ import annotations

import pytest

from cricket_live.cricket_math import (
    TeamAggregate,
    apply_innings_pair,
    balls_to_overs_str,
    economy_rate,
    normalize_innings_balls,
    nrr,
    projected_score,
    required_run_rate,
    run_rate,
    strike_rate,
)


def test_overs_notation_counts_balls_not_decimals():
    assert balls_to_overs_str(119) == "19.5"
    assert balls_to_overs_str(12) == "2.0"
    assert balls_to_overs_str(0) == "0.0"


def test_required_run_rate_chasing():
    """150 to win, 140 scored, 12 balls left -> 5.0 an over."""
    assert required_run_rate(150, 140, 12) == pytest.approx(5.0)


def test_required_run_rate_undefined_without_balls():
    assert required_run_rate(150, 140, 0) is None


def test_rates_before_any_ball_are_zero():
    assert run_rate(0, 0) == 0.0
    assert strike_rate(12, 0) == 0.0
    assert economy_rate(10, 0) == 0.0


def test_rates():
    assert run_rate(45, 30) == pytest.approx(9.0)
    assert strike_rate(50, 25) == pytest.approx(200.0)
    assert economy_rate(30, 24) == pytest.approx(7.5)


def test_projected_score_extrapolates_current_rate():
    assert projected_score(60, 60, 120) == 120
    assert projected_score(0, 0, 120) == 0


def test_all_out_counts_full_quota():
    assert normalize_innings_balls(50, True, 120) == 120
    assert normalize_innings_balls(50, False, 120) == 50
    assert normalize_innings_balls(0, True, 120) == 0
    with pytest.raises(ValueError):
        normalize_innings_balls(-1, False, 120)


def test_nrr_from_innings_pair():
    a = TeamAggregate("IND")
    b = TeamAggregate("AUS")
    apply_innings_pair(a, b, first_runs=180, first_balls=120, second_runs=150, second_balls=120)
    assert nrr(a) == pytest.approx(1.5)
    assert nrr(b) == pytest.approx(-1.5)

    with pytest.raises(ValueError):
        apply_innings_pair(a, b, first_runs=10, first_balls=0, second_runs=5, second_balls=6)
