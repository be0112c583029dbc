import importlib


def test_import_package():
    pkg = importlib.import_module("KNNrainPy")
    assert hasattr(pkg, "__version__")


def test_public_api_is_exported():
    pkg = importlib.import_module("KNNrainPy")
    for name in pkg.__all__:
        assert hasattr(pkg, name), name
    assert callable(pkg.impute)
    assert callable(pkg.order_by_distance)
