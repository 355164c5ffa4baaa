from __future__ import annotations

import pytest

from geo_gateway.services.forward_params import ForwardParamBuilder


@pytest.fixture
def builder() -> ForwardParamBuilder:
    return ForwardParamBuilder()
