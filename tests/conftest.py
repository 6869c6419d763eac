import pytest

from fakes import make_config


@pytest.fixture()
def config() -> dict:
    return make_config()
