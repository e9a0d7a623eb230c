import os
import sys

import httpx
import pytest

# Ensure `import geoturtle` works when pytest is run from a source checkout
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)


@pytest.fixture
def mock_transport():
    """make(responder) -> (transport, list of requested URLs)"""
    def make(responder):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            return responder(request)

        return httpx.MockTransport(handler), calls
    return make
