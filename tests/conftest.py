import asyncio
import inspect
import os
import sys
from pathlib import Path

# Configure the gateway before any import that might build the runtime
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("API_SECRET_KEY", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("MODEL_BACKEND", "stub")
os.environ.setdefault("OPENAI_API_KEY", "sk-test-not-a-real-key")
os.environ.setdefault("RATE_LIMIT_WINDOW", "60000")
os.environ.setdefault("RATE_LIMIT_MAX", "10")
os.environ.setdefault("LOG_JSON", "false")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from mftgateway.service.runtime import reset_runtime_for_tests  # noqa: E402

TEST_API_KEY = os.environ["API_SECRET_KEY"]
TEST_USER_ID = "3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b"


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def auth_headers():
    return {"x-api-key": TEST_API_KEY, "x-user-id": TEST_USER_ID}


@pytest.fixture
def chat_payload():
    return {
        "messages": [
            {"id": "1", "content": "hi", "isUser": True, "timestamp": "2024-01-01T00:00:00Z"}
        ],
        "language": "english",
        "personality": {"humor": 1, "mockery": 1, "seriousness": 1, "professionalism": 1},
        "userId": TEST_USER_ID,
    }


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
