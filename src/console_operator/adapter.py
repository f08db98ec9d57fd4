"""Resource adapter interface.

The pipeline never builds backend requests itself. Each resource kind is
reached through an adapter exposing get/create/update, and backend failures
are reported with the azure-core exception taxonomy:

- ResourceNotFoundError: the named object does not exist
- ResourceExistsError: create of an object that already exists
- ResourceModifiedError: conditional update lost against a concurrent writer
- any other AzureError: transient backend failure
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, TypeVar

from .models import ConfigMap, Deployment, OAuthClient, Resource, Route, Secret, Service

ResourceT = TypeVar("ResourceT", bound=Resource)


class ResourceAdapter(Protocol[ResourceT]):
    """Get/create/update capability for one resource kind."""

    def get(self, name: str) -> ResourceT:
        """Return the stored object.

        Raises:
            ResourceNotFoundError: If no object with this name exists.
        """
        ...

    def create(self, resource: ResourceT) -> tuple[ResourceT, bool]:
        """Persist a new object. Returns the stored object and whether it was created.

        Raises:
            ResourceExistsError: If the object already exists.
        """
        ...

    def update(self, resource: ResourceT) -> tuple[ResourceT, bool]:
        """Write an existing object. Returns the stored object and whether it changed.

        Writing identical content is a no-op that reports ``False``.

        Raises:
            ResourceNotFoundError: If the object does not exist.
            ResourceModifiedError: If ``resource`` was read at a stale version.
        """
        ...


@dataclass(frozen=True)
class ResourceClients:
    """One adapter per managed resource kind, injected into the reconciler."""

    routes: ResourceAdapter[Route]
    services: ResourceAdapter[Service]
    config_maps: ResourceAdapter[ConfigMap]
    secrets: ResourceAdapter[Secret]
    oauth_clients: ResourceAdapter[OAuthClient]
    deployments: ResourceAdapter[Deployment]
