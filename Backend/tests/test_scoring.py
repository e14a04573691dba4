import pytest

from services.quiz_service.scoring import calculate_points


def parts(breakdown):
    return (breakdown.base_after_multiplier, breakdown.first_try_bonus,
            breakdown.speed_bonus, breakdown.total)


def test_first_try_instant_answer():
    assert parts(calculate_points(100, 1, 0)) == (100, 50, 25, 175)


def test_first_try_at_speed_window_edge():
    assert parts(calculate_points(100, 1, 60000)) == (100, 50, 0, 150)


def test_second_attempt_gets_no_bonuses():
    assert parts(calculate_points(100, 2, 0)) == (60, 0, 0, 60)


def test_speed_bonus_decays_linearly_and_floors():
    assert calculate_points(100, 1, 30000).speed_bonus == 12
    assert calculate_points(100, 1, 59999).speed_bonus == 0


@pytest.mark.parametrize("elapsed,speed", [(-500, 25), (10_000_000, 0), ("fast", 0), (None, 0)])
def test_elapsed_is_clamped(elapsed, speed):
    assert calculate_points(100, 1, elapsed).speed_bonus == speed


@pytest.mark.parametrize("attempt,base_after", [(3, 40), (4, 25), (10, 25)])
def test_attempt_multiplier_floor(attempt, base_after):
    b = calculate_points(100, attempt, 0)
    assert b.base_after_multiplier == base_after
    assert b.total == base_after


@pytest.mark.parametrize("elapsed", [0, 30000, 90000])
def test_total_never_increases_with_attempt_number(elapsed):
    totals = [calculate_points(200, n, elapsed).total for n in (1, 2, 3, 4, 10)]
    assert totals == sorted(totals, reverse=True)


def test_breakdown_dict_shape():
    d = calculate_points(100, 1, 0).to_dict()
    assert d == {
        "attemptMultiplier": 1.0,
        "baseAfterMultiplier": 100,
        "firstTryBonus": 50,
        "speedBonus": 25,
        "total": 175,
    }


def test_same_inputs_same_output():
    assert calculate_points(137, 1, 1234) == calculate_points(137, 1, 1234)
