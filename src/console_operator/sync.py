"""Per-resource sync steps.

Each step fetches its resource, creates it when missing, and writes it back
only when the stored content diverges from what the desired state and the
prerequisite resources imply. A step that cannot hand a usable resource to
the steps after it raises a SyncStop subclass; the next pass picks up from
there. Backend errors other than not-found are never caught here.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass

from azure.core.exceptions import ResourceNotFoundError

from .adapter import ResourceAdapter, ResourceClients, ResourceT
from .models import ConfigMap, Console, Deployment, OAuthClient, Route, Secret, Service
from .security import SecretGenerator, redact
from .subresources import (
    CONFIG_MAP_NAME,
    DEPLOYMENT_NAME,
    OAUTH_CLIENT_NAME,
    ROUTE_NAME,
    SECRET_NAME,
    SERVICE_NAME,
    default_config_map,
    default_deployment,
    default_route,
    default_secret,
    default_service,
    register_console_to_oauth_client,
    resource_versions_changed,
    secret_value,
    update_resource_versions,
)

logger = logging.getLogger(__name__)


class SyncStop(Exception):
    """A step ended the pass before the remaining steps could run.

    ``changed`` records whether the step wrote anything before stopping.
    """

    def __init__(self, kind: str, name: str, message: str, changed: bool = False) -> None:
        super().__init__(f"{kind} {name}: {message}")
        self.kind = kind
        self.name = name
        self.changed = changed


class ResourceJustCreated(SyncStop):
    """The resource was just written; dependents wait for the next pass."""

    pass


class ResourceNotReady(SyncStop):
    """The resource exists but the backend has not finished populating it."""

    pass


class MissingPrerequisiteError(SyncStop):
    """A resource the operator cannot create itself is missing.

    Requires manual remediation; retrying alone will not fix it.
    """

    pass


@dataclass(frozen=True)
class SyncContext:
    """Everything a step may read. Built fresh for every pass."""

    clients: ResourceClients
    console: Console
    namespace: str
    image: str
    secret_generator: SecretGenerator


def _merge_desired(existing: ResourceT, desired: ResourceT, *fields: str) -> ResourceT:
    """Overlay the desired labels, annotations and ``fields`` on ``existing``.

    Keys set on the stored object by someone else are preserved.
    """
    merged = existing.model_copy(deep=True)
    merged.metadata.labels = {**existing.metadata.labels, **desired.metadata.labels}
    merged.metadata.annotations = {
        **existing.metadata.annotations,
        **desired.metadata.annotations,
    }
    for name in fields:
        setattr(merged, name, copy.deepcopy(getattr(desired, name)))
    return merged


def _apply(
    adapter: ResourceAdapter[ResourceT],
    existing: ResourceT | None,
    desired: ResourceT,
    *fields: str,
) -> tuple[ResourceT, bool]:
    """Create ``desired`` or bring ``existing`` in line with it."""
    if existing is None:
        created, is_new = adapter.create(desired)
        logger.info(
            "Object created",
            extra={"kind": desired.kind, "object_name": desired.name},
        )
        return created, is_new

    merged = _merge_desired(existing, desired, *fields)
    if merged.content() == existing.content():
        return existing, False

    updated, changed = adapter.update(merged)
    if changed:
        logger.info(
            "Object updated",
            extra={"kind": desired.kind, "object_name": desired.name},
        )
    return updated, changed


def _get_or_none(adapter: ResourceAdapter[ResourceT], name: str) -> ResourceT | None:
    try:
        return adapter.get(name)
    except ResourceNotFoundError:
        return None


# =============================================================================
# Steps, in dependency order
# =============================================================================


def sync_route(ctx: SyncContext) -> tuple[Route, bool]:
    """Get or create the route; only a route with a host is handed on.

    The stored host is authoritative once set, so an existing route is
    never written back.
    """
    try:
        route = ctx.clients.routes.get(ROUTE_NAME)
    except ResourceNotFoundError:
        logger.info("Route not found, creating new route", extra={"route": ROUTE_NAME})
        _, created = ctx.clients.routes.create(default_route(ctx.console, ctx.namespace))
        raise ResourceJustCreated(Route.kind, ROUTE_NAME, "created", changed=created) from None

    if not route.spec.host:
        logger.warning("Waiting on route host", extra={"route": ROUTE_NAME})
        raise ResourceNotReady(Route.kind, ROUTE_NAME, "waiting on route host")

    return route, False


def sync_service(ctx: SyncContext) -> tuple[Service, bool]:
    """Apply the console service. Nothing depends on it within a pass."""
    desired = default_service(ctx.console, ctx.namespace)
    existing = _get_or_none(ctx.clients.services, SERVICE_NAME)
    return _apply(ctx.clients.services, existing, desired, "spec")


def sync_config_map(ctx: SyncContext, route: Route) -> tuple[ConfigMap, bool]:
    """Apply the server config derived from the console and the route host."""
    desired = default_config_map(ctx.console, ctx.namespace, route)
    existing = _get_or_none(ctx.clients.config_maps, CONFIG_MAP_NAME)
    return _apply(ctx.clients.config_maps, existing, desired, "data")


def sync_secret(ctx: SyncContext) -> tuple[Secret, bool]:
    """Return a non-empty OAuth secret, or generate one and stop the pass.

    An existing non-empty secret is never regenerated.
    """
    secret = _get_or_none(ctx.clients.secrets, SECRET_NAME)
    if secret_value(secret):
        return secret, False

    desired = default_secret(ctx.console, ctx.namespace, ctx.secret_generator())
    if secret is None:
        logger.info("Secret not found, creating new secret", extra={"secret": SECRET_NAME})
        _, changed = ctx.clients.secrets.create(desired)
    else:
        logger.info("Secret is empty, generating new value", extra={"secret": SECRET_NAME})
        _, changed = ctx.clients.secrets.update(
            _merge_desired(secret, desired, "data")
        )
    raise ResourceJustCreated(Secret.kind, SECRET_NAME, "generated", changed=changed)


def sync_oauth_client(
    ctx: SyncContext, route: Route, secret: Secret
) -> tuple[OAuthClient, bool]:
    """Register the console route and secret with the OAuth client.

    Registration is rewritten on every pass; the store reports whether it
    actually changed. The client itself is installed with the operator, so
    there is nothing this step can do when it is missing.
    """
    try:
        client = ctx.clients.oauth_clients.get(OAUTH_CLIENT_NAME)
    except ResourceNotFoundError as e:
        logger.error(
            "OAuth client for console does not exist",
            extra={"oauth_client": OAUTH_CLIENT_NAME},
        )
        raise MissingPrerequisiteError(
            OAuthClient.kind, OAUTH_CLIENT_NAME, "oauth client for console does not exist"
        ) from e

    value = secret_value(secret)
    registered = register_console_to_oauth_client(client, route, value)
    updated, changed = ctx.clients.oauth_clients.update(registered)
    if changed:
        logger.info(
            "OAuth client registered",
            extra={
                "oauth_client": OAUTH_CLIENT_NAME,
                "redirect_uris": updated.redirect_uris,
                "secret": redact(value),
            },
        )
    return updated, changed


def sync_deployment(
    ctx: SyncContext, config_map: ConfigMap, secret: Secret
) -> tuple[Deployment, bool]:
    """Create the deployment, or roll it out when its config or secret changed."""
    try:
        existing = ctx.clients.deployments.get(DEPLOYMENT_NAME)
    except ResourceNotFoundError:
        logger.info(
            "Deployment not found, creating new deployment",
            extra={"deployment": DEPLOYMENT_NAME},
        )
        desired = default_deployment(
            ctx.console, ctx.namespace, ctx.image, config_map, secret
        )
        _, created = ctx.clients.deployments.create(desired)
        raise ResourceJustCreated(
            Deployment.kind, DEPLOYMENT_NAME, "created", changed=created
        ) from None

    if not resource_versions_changed(existing, config_map, secret):
        return existing, False

    logger.info(
        "Config or secret changed, rolling out deployment",
        extra={
            "deployment": DEPLOYMENT_NAME,
            "config_version": config_map.resource_version,
            "secret_version": secret.resource_version,
        },
    )
    return ctx.clients.deployments.update(
        update_resource_versions(existing, config_map, secret)
    )
