"""Pytest configuration and fixtures."""

import itertools
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for backend_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from backend_mock import MockBackend  # noqa: E402

from console_operator.reconciler import ConsoleReconciler  # noqa: E402


@pytest.fixture
def secret_generator() -> Callable[[], str]:
    """Deterministic generator: generated-secret-0001, generated-secret-0002, ..."""
    counter = itertools.count(1)
    return lambda: f"generated-secret-{next(counter):04d}"


@pytest.fixture
def backend() -> MockBackend:
    """Empty backend with the console OAuth client installed."""
    backend = MockBackend()
    backend.install_oauth_client()
    backend.reset_calls()
    return backend


@pytest.fixture
def reconciler(backend: MockBackend, secret_generator: Callable[[], str]) -> ConsoleReconciler:
    return ConsoleReconciler(
        backend.clients,
        namespace="openshift-console",
        image="quay.io/openshift/origin-console:4.0",
        secret_generator=secret_generator,
    )
