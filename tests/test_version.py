"""
Tests for the version module of aa-singleton.
"""
import importlib
import re
from importlib import metadata as importlib_metadata
from unittest.mock import mock_open, patch

import pytest
import tomli

from aa_singleton import __version__
from aa_singleton.version import FALLBACK_VERSION, PYPROJECT, source_tree_version


def _not_installed(name):
    raise importlib_metadata.PackageNotFoundError(name)


@pytest.fixture(autouse=True)
def restore_version_module():
    yield
    import aa_singleton.version as vmod
    importlib.reload(vmod)


def test_version_format():
    """The version string follows semantic versioning"""
    assert re.match(r'^\d+\.\d+\.\d+$', __version__), "Version should follow semantic versioning"


@patch('importlib.metadata.version')
def test_version_from_metadata(mock_metadata_version):
    """When metadata lookup succeeds, version comes from metadata"""
    mock_metadata_version.return_value = "2.3.4"
    import aa_singleton.version as vmod
    importlib.reload(vmod)
    assert vmod.__version__ == "2.3.4"
    mock_metadata_version.assert_called_with("aa-singleton")


@patch('importlib.metadata.version')
@patch('pathlib.Path.open', new_callable=mock_open, read_data=b'[project]\nversion = "1.2.3"\n')
def test_version_from_file(mock_open_file, mock_metadata_version):
    """When metadata lookup fails, pyproject.toml is read"""
    mock_metadata_version.side_effect = importlib_metadata.PackageNotFoundError
    import aa_singleton.version as vmod
    importlib.reload(vmod)
    assert vmod.__version__ == "1.2.3"


def test_version_file_not_found(monkeypatch):
    """If pyproject.toml is missing, fall back to the default"""
    monkeypatch.setattr(importlib_metadata, 'version', _not_installed)
    monkeypatch.setattr('pathlib.Path.open', lambda *args, **kwargs: (_ for _ in ()).throw(FileNotFoundError()))
    import aa_singleton.version as vmod
    importlib.reload(vmod)
    assert vmod.__version__ == "0.3.0"


def test_version_key_error(monkeypatch):
    """If the TOML has no version key, fall back to the default"""
    monkeypatch.setattr(importlib_metadata, 'version', _not_installed)
    monkeypatch.setattr('pathlib.Path.open', mock_open(read_data=b'[project]\nname = "aa-singleton"\n'))
    import aa_singleton.version as vmod
    importlib.reload(vmod)
    assert vmod.__version__ == "0.3.0"


def test_version_toml_decode_error(monkeypatch):
    """If the TOML doesn't parse, fall back to the default"""
    monkeypatch.setattr(importlib_metadata, 'version', _not_installed)
    monkeypatch.setattr('pathlib.Path.open', mock_open(read_data=b'invalid toml content'))
    import aa_singleton.version as vmod
    importlib.reload(vmod)
    assert vmod.__version__ == "0.3.0"
    with pytest.raises(tomli.TOMLDecodeError):
        tomli.loads("invalid toml content")


def test_source_tree_version(tmp_path):
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text('[project]\nname = "aa-singleton"\nversion = "4.5.6"\n')
    assert source_tree_version(pyproject) == "4.5.6"
    assert source_tree_version(tmp_path / "missing.toml") == FALLBACK_VERSION


def test_checkout_matches_pyproject():
    """The source tree's pyproject.toml carries the version and the interpreter floor"""
    with PYPROJECT.open("rb") as f:
        project = tomli.load(f)["project"]
    assert source_tree_version() == project["version"]
    # networks.json is read with importlib.resources.files
    assert project["requires-python"] == ">=3.9"
