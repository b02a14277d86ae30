import pytest

from amqpbench.config import SamplerConfig
from tests.fakes import FakeBroker


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def make_config():
    def _make(**kwargs) -> SamplerConfig:
        kwargs.setdefault("host", "rabbit-1")
        return SamplerConfig(**kwargs)

    return _make
