import sys
from importlib import metadata


def test_dev_version(monkeypatch, mocker):
    # When apiline is run from a checkout without installation
    monkeypatch.delitem(sys.modules, "apiline.core.version")
    mocker.patch("importlib.metadata.version", side_effect=metadata.PackageNotFoundError)
    from apiline.core.version import APILINE_VERSION

    # Then its version is "dev"
    assert APILINE_VERSION == "dev"
