"""
test_version.py - Tests for version utilities
"""

from ghascan.utils.version import __version__, get_version, get_version_info


def test_get_version():
    """Test retrieving version string."""
    version = get_version()
    assert isinstance(version, str)
    assert version == __version__
    assert len(version.split(".")) == 3  # x.y.z


def test_get_version_info():
    """Test retrieving detailed version information."""
    info = get_version_info()

    assert info["version"] == __version__
    assert "release_date" in info
    assert isinstance(info["release_year"], int)
    assert info["release_year"] >= 2024
