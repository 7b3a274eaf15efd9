def test_import_arcana_package() -> None:
    import importlib

    module = importlib.import_module("arcana")
    assert module is not None
    assert module.__version__


def test_import_rng_no_side_effects() -> None:
    from arcana.core.rng import RNG

    rng = RNG(42)
    value = rng.randint(0, 1)
    assert value in (0, 1)


def test_import_service_layer() -> None:
    from arcana.services import ProgressionService, StoryCatalog, validate_story

    assert ProgressionService is not None
    assert StoryCatalog is not None
    assert callable(validate_story)
