from arcana.core.rng import RNG


def test_rng_determinism_same_seed() -> None:
    rng_a = RNG(12345)
    rng_b = RNG(12345)

    ints_a = [rng_a.randint(1, 100) for _ in range(5)]
    ints_b = [rng_b.randint(1, 100) for _ in range(5)]
    rolls_a = [rng_a.roll_d20() for _ in range(5)]
    rolls_b = [rng_b.roll_d20() for _ in range(5)]

    assert ints_a == ints_b
    assert rolls_a == rolls_b


def test_rng_different_seed() -> None:
    rng_a = RNG(11111)
    rng_b = RNG(22222)

    draws_a = [rng_a.randint(1, 100) for _ in range(5)]
    draws_b = [rng_b.randint(1, 100) for _ in range(5)]

    assert draws_a != draws_b


def test_d20_rolls_stay_in_range() -> None:
    rng = RNG(7)
    rolls = {rng.roll_d20() for _ in range(500)}

    assert rolls <= set(range(1, 21))
    assert 1 in rolls and 20 in rolls
