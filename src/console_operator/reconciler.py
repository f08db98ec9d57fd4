"""Dependency-ordered reconciliation pass for the console.

The pass starts from zero and works its way through the requirements for a
running console:

    route -> service -> config map -> secret -> oauth client -> deployment

If at any point something is missing, the step creates it and the pass ends
right there. The next pass finds it and moves one step further. No step
coordinates with another beyond consuming its predecessor's return value, so
nothing ever needs to be rolled back: correctness rests on the fixed order
and on every step being idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from azure.core.exceptions import AzureError, HttpResponseError, ResourceModifiedError

from .adapter import ResourceClients
from .config import DEFAULT_CONSOLE_IMAGE, DEFAULT_TARGET_NAMESPACE, Config
from .models import Console, ConsoleStatus, OAuthClient, Route, Secret
from .security import SecretGenerator, random_secret
from .status import project_status
from .sync import (
    MissingPrerequisiteError,
    ResourceJustCreated,
    ResourceNotReady,
    SyncContext,
    SyncStop,
    sync_config_map,
    sync_deployment,
    sync_oauth_client,
    sync_route,
    sync_secret,
    sync_service,
)

logger = logging.getLogger(__name__)

# Step names, in execution order
STEP_ROUTE = "route"
STEP_SERVICE = "service"
STEP_CONFIG_MAP = "config_map"
STEP_SECRET = "secret"
STEP_OAUTH_CLIENT = "oauth_client"
STEP_DEPLOYMENT = "deployment"
STEP_ORDER = (
    STEP_ROUTE,
    STEP_SERVICE,
    STEP_CONFIG_MAP,
    STEP_SECRET,
    STEP_OAUTH_CLIENT,
    STEP_DEPLOYMENT,
)


class PassState(str, Enum):
    """How a pass ended."""

    CONVERGED = "converged"  # Every step ran, nothing written
    PROGRESSED = "progressed"  # Something was written; run again soon
    NOT_READY = "not_ready"  # Waiting on the backend; run again soon
    FAILED = "failed"  # See failure_reason


class FailureReason(str, Enum):
    """Why a FAILED pass failed."""

    MISSING_PREREQUISITE = "missing_prerequisite"  # Needs an operator's attention
    CONFLICT = "conflict"  # Lost a concurrent write, retry
    BACKEND = "backend"  # Backend error, retry at the caller's discretion


@dataclass
class PassResult:
    """Outcome of a single pass.

    ``console`` is the updated desired state (input copy plus projected
    status), ``changed`` is true if any step created or updated anything and
    ``error`` holds whatever ended the pass early, stop signals included.
    """

    console: Console
    state: PassState = PassState.CONVERGED
    changed: bool = False
    error: Exception | None = None
    failure_reason: FailureReason | None = None
    stopped_at: str | None = None
    step_changes: dict[str, bool] = field(default_factory=dict)
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """True unless the pass FAILED. Stop signals are not failures."""
        return self.state != PassState.FAILED

    @property
    def retryable(self) -> bool:
        """True when simply running another pass may make progress."""
        if self.state in (PassState.PROGRESSED, PassState.NOT_READY):
            return True
        return self.failure_reason in (FailureReason.CONFLICT, FailureReason.BACKEND)


@dataclass
class _Observed:
    """Resources the status projector needs, as far as the pass got."""

    route: Route | None = None
    secret: Secret | None = None
    oauth_client: OAuthClient | None = None


def _retain_unobserved(
    previous: ConsoleStatus, projected: ConsoleStatus, observed: _Observed
) -> ConsoleStatus:
    """Keep the last known value of every status field the pass could not observe.

    A transient error says nothing about the resources the pass never read.
    """
    host = previous.default_host_name
    if observed.route is not None:
        host = projected.default_host_name
    if observed.secret is not None and observed.oauth_client is not None:
        oauth_secret = projected.oauth_secret
    else:
        oauth_secret = previous.oauth_secret
    return ConsoleStatus(default_host_name=host, oauth_secret=oauth_secret)


class ConsoleReconciler:
    """Runs reconciliation passes against an injected set of adapters.

    Holds no per-pass state: every pass re-reads everything it needs, so
    concurrent passes are only ever coordinated by the store's optimistic
    concurrency.
    """

    def __init__(
        self,
        clients: ResourceClients,
        namespace: str = DEFAULT_TARGET_NAMESPACE,
        image: str = DEFAULT_CONSOLE_IMAGE,
        secret_generator: SecretGenerator = random_secret,
    ) -> None:
        self._clients = clients
        self._namespace = namespace
        self._image = image
        self._secret_generator = secret_generator

    @classmethod
    def from_config(cls, config: Config, clients: ResourceClients) -> ConsoleReconciler:
        return cls(
            clients,
            namespace=config.target_namespace,
            image=config.console_image,
        )

    def run_pass(self, console: Console) -> PassResult:
        """Run one pass toward ``console``.

        Never raises for backend or stop conditions; they are reported on the
        result. ``console`` itself is not modified.
        """
        result = PassResult(console=console)
        observed = _Observed()
        ctx = SyncContext(
            clients=self._clients,
            console=console,
            namespace=self._namespace,
            image=self._image,
            secret_generator=self._secret_generator,
        )
        current_step = STEP_ROUTE

        try:
            route, changed = sync_route(ctx)
            self._record(result, current_step, changed)
            observed.route = route

            current_step = STEP_SERVICE
            _, changed = sync_service(ctx)
            self._record(result, current_step, changed)

            current_step = STEP_CONFIG_MAP
            config_map, changed = sync_config_map(ctx, route)
            self._record(result, current_step, changed)

            current_step = STEP_SECRET
            secret, changed = sync_secret(ctx)
            self._record(result, current_step, changed)
            observed.secret = secret

            current_step = STEP_OAUTH_CLIENT
            oauth_client, changed = sync_oauth_client(ctx, route, secret)
            self._record(result, current_step, changed)
            observed.oauth_client = oauth_client

            current_step = STEP_DEPLOYMENT
            _, changed = sync_deployment(ctx, config_map, secret)
            self._record(result, current_step, changed)

        except ResourceJustCreated as e:
            self._stop(result, current_step, e, PassState.PROGRESSED)
        except ResourceNotReady as e:
            self._stop(result, current_step, e, PassState.NOT_READY)
        except MissingPrerequisiteError as e:
            self._stop(result, current_step, e, PassState.FAILED)
            result.failure_reason = FailureReason.MISSING_PREREQUISITE
        except ResourceModifiedError as e:
            self._fail(result, current_step, e, FailureReason.CONFLICT)
            logger.warning(
                "Conflict writing resource, pass abandoned",
                extra={"step": current_step, "error": str(e)},
            )
        except HttpResponseError as e:
            self._fail(result, current_step, e, FailureReason.BACKEND)
            logger.error(
                "Backend error",
                extra={"step": current_step, "error": str(e), "status_code": e.status_code},
            )
        except AzureError as e:
            self._fail(result, current_step, e, FailureReason.BACKEND)
            logger.error("Backend error", extra={"step": current_step, "error": str(e)})
        except Exception as e:
            self._fail(result, current_step, e, FailureReason.BACKEND)
            logger.exception("Unexpected error during pass", extra={"step": current_step})
        else:
            result.state = PassState.PROGRESSED if result.changed else PassState.CONVERGED

        status = project_status(observed.route, observed.secret, observed.oauth_client)
        if result.failure_reason in (FailureReason.CONFLICT, FailureReason.BACKEND):
            status = _retain_unobserved(console.status, status, observed)
        result.console = console.with_status(status)
        result.end_time = datetime.now(UTC)
        self._log_result(result)
        return result

    @staticmethod
    def _record(result: PassResult, step: str, changed: bool) -> None:
        result.step_changes[step] = changed
        result.changed = result.changed or changed

    def _stop(self, result: PassResult, step: str, stop: SyncStop, state: PassState) -> None:
        self._record(result, step, stop.changed)
        result.state = state
        result.error = stop
        result.stopped_at = step

    @staticmethod
    def _fail(result: PassResult, step: str, error: Exception, reason: FailureReason) -> None:
        result.state = PassState.FAILED
        result.error = error
        result.failure_reason = reason
        result.stopped_at = step

    def _log_result(self, result: PassResult) -> None:
        """Log the pass result with structured data."""
        extra: dict[str, Any] = {
            "console": result.console.metadata.name,
            "state": result.state.value,
            "changed": result.changed,
            "duration_seconds": result.duration_seconds,
            "default_host_name": result.console.status.default_host_name,
            "oauth_secret": result.console.status.oauth_secret.value,
        }
        for step in STEP_ORDER:
            extra[f"{step}_changed"] = result.step_changes.get(step, False)

        if result.stopped_at is not None:
            extra["stopped_at"] = result.stopped_at
        if result.error is not None:
            extra["error"] = str(result.error)

        if result.state == PassState.FAILED:
            extra["failure_reason"] = result.failure_reason.value if result.failure_reason else None
            logger.error("Pass failed", extra=extra)
        elif result.state == PassState.NOT_READY:
            logger.warning("Pass stopped, waiting on backend", extra=extra)
        else:
            logger.info("Pass complete", extra=extra)
