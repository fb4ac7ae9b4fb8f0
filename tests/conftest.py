"""Shared pytest fixtures."""

import pytest

from moltstream.infra.device_identity import DeviceIdentity, generate_device_identity


@pytest.fixture
def device_identity() -> DeviceIdentity:
    return generate_device_identity()
