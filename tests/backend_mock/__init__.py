"""In-memory backend for reconciliation tests.

Wraps the reference MemoryResourceStore for every resource kind and records
each adapter call in one shared, ordered log, so tests can assert on the
order in which a pass touched the backend.

Key Features:
- Shared call log of (kind, operation, name) across all kinds
- Error injection per kind and operation
- Helpers for the changes an external actor makes: admitting a route host,
  installing the OAuth client, clearing the secret

Usage:
    from backend_mock import MockBackend

    backend = MockBackend()
    backend.install_oauth_client()
    reconciler = ConsoleReconciler(backend.clients)
    reconciler.run_pass(Console())
    backend.admit_route("console.example.com")

    assert backend.kinds_written() == ["Route"]
"""

from .backend import Call, MockBackend, RecordingAdapter

__all__ = [
    "Call",
    "MockBackend",
    "RecordingAdapter",
]
