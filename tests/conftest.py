import uuid

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def group():
    """Unique group name so root registries never leak between tests."""
    return f"group-{uuid.uuid4().hex}"


@pytest.fixture
def registry(group):
    from multimeter.services.metrics import obtain_registry

    return obtain_registry(group, "some_scope")


@pytest.fixture
def client():
    from multimeter.app import app

    with TestClient(app) as test_client:
        yield test_client
