"""Shared fixtures for the Codestorm test suite."""
import copy
from typing import Callable, Dict
from unittest.mock import AsyncMock

import pytest

from codestorm.providers.completion_gateway import CompletionGateway
from codestorm.utils.config import DEFAULT_CONFIG
from codestorm.utils.errors import get_error_handler


@pytest.fixture
def config() -> Dict:
    return copy.deepcopy(DEFAULT_CONFIG)


@pytest.fixture(autouse=True)
def clean_error_history():
    handler = get_error_handler()
    handler.error_history.clear()
    handler.error_counts.clear()
    yield
    handler.error_history.clear()
    handler.error_counts.clear()


@pytest.fixture
def make_gateway(config) -> Callable[[AsyncMock], CompletionGateway]:
    def build(capability: AsyncMock) -> CompletionGateway:
        return CompletionGateway.from_config(capability, config)

    return build
