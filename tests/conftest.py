import pytest

from musicxml2tab.config import ImportConfig


@pytest.fixture(scope="session")
def cfg():
    """Package defaults only, the user's config file is never read."""
    return ImportConfig.defaults()
