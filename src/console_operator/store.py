"""Reference resource stores implementing the adapter interface.

MemoryResourceStore keeps objects in a dict and is what the tests and the
single-pass CLI use. FileResourceStore persists the same objects as one YAML
document per object, which lets the resync loop run locally without a
cluster.

Both stores:
- return deep copies, so callers never alias stored state
- assign a new resource version on every effective write
- reject updates carrying a stale resource version (optimistic concurrency)
- treat an update with identical content as a no-op
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Generic

import yaml
from azure.core import MatchConditions
from azure.core.exceptions import (
    DecodeError,
    ResourceExistsError,
    ResourceModifiedError,
    ResourceNotFoundError,
    ServiceRequestError,
)
from pydantic import ValidationError

from .adapter import ResourceClients, ResourceT
from .config import MAX_STORED_OBJECT_SIZE_BYTES
from .models import ConfigMap, Deployment, OAuthClient, Resource, Route, Secret, Service

logger = logging.getLogger(__name__)

AdmissionHook = Callable[[Resource], None]


def admit_routes(router_domain: str) -> AdmissionHook:
    """Build an admission hook that assigns a host to routes created without one.

    The host follows the router's default ``<name>-<namespace>.<domain>`` scheme.
    """

    def admit(resource: Resource) -> None:
        if not isinstance(resource, Route) or resource.spec.host:
            return
        namespace = resource.metadata.namespace or "default"
        resource.spec.host = f"{resource.name}-{namespace}.{router_domain}"
        logger.info(
            "Route admitted",
            extra={"route": resource.name, "host": resource.spec.host},
        )

    return admit


class MemoryResourceStore(Generic[ResourceT]):
    """In-memory store for one resource kind.

    Thread-safe: passes may overlap and share a store.
    """

    def __init__(
        self,
        model: type[ResourceT],
        admit: AdmissionHook | None = None,
    ) -> None:
        self._model = model
        self._admit = admit
        self._objects: dict[str, ResourceT] = {}
        self._lock = threading.RLock()
        self._last_version = self._initial_version()

    @property
    def kind(self) -> str:
        return self._model.kind

    def _initial_version(self) -> int:
        return 0

    def _next_version(self) -> str:
        self._last_version += 1
        return str(self._last_version)

    def _load(self, name: str) -> ResourceT | None:
        return self._objects.get(name)

    def _save(self, resource: ResourceT) -> None:
        self._objects[resource.name] = resource

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._objects)

    def get(self, name: str) -> ResourceT:
        with self._lock:
            stored = self._load(name)
            if stored is None:
                raise ResourceNotFoundError(f'{self.kind} "{name}" not found')
            return stored.model_copy(deep=True)

    def create(self, resource: ResourceT) -> tuple[ResourceT, bool]:
        with self._lock:
            if self._load(resource.name) is not None:
                raise ResourceExistsError(f'{self.kind} "{resource.name}" already exists')

            stored = resource.model_copy(deep=True)
            if self._admit is not None:
                self._admit(stored)
            stored.metadata.resource_version = self._next_version()
            self._save(stored)

        logger.debug(
            "Object created",
            extra={
                "kind": self.kind,
                "object_name": stored.name,
                "resource_version": stored.resource_version,
            },
        )
        return stored.model_copy(deep=True), True

    def update(
        self,
        resource: ResourceT,
        match_condition: MatchConditions = MatchConditions.IfNotModified,
    ) -> tuple[ResourceT, bool]:
        with self._lock:
            stored = self._load(resource.name)
            if stored is None:
                raise ResourceNotFoundError(f'{self.kind} "{resource.name}" not found')

            if (
                match_condition == MatchConditions.IfNotModified
                and resource.resource_version
                and resource.resource_version != stored.resource_version
            ):
                raise ResourceModifiedError(
                    f'{self.kind} "{resource.name}" was modified: '
                    f"expected version {resource.resource_version}, "
                    f"found {stored.resource_version}"
                )

            if resource.content() == stored.content():
                return stored.model_copy(deep=True), False

            updated = resource.model_copy(deep=True)
            updated.metadata.resource_version = self._next_version()
            self._save(updated)

        logger.debug(
            "Object updated",
            extra={
                "kind": self.kind,
                "object_name": updated.name,
                "resource_version": updated.resource_version,
            },
        )
        return updated.model_copy(deep=True), True

    def put(self, resource: ResourceT) -> ResourceT:
        """Write an object unconditionally, as an external actor would.

        Used to seed objects the operator does not create itself (the OAuth
        client) and to simulate backend-side changes such as route admission.
        """
        with self._lock:
            stored = resource.model_copy(deep=True)
            stored.metadata.resource_version = self._next_version()
            self._save(stored)
            return stored.model_copy(deep=True)


class FileResourceStore(MemoryResourceStore[ResourceT]):
    """Store persisting each object as ``<root>/<kind>/<name>.yaml``."""

    def __init__(
        self,
        model: type[ResourceT],
        root: Path,
        admit: AdmissionHook | None = None,
    ) -> None:
        self._directory = root / model.kind.lower()
        super().__init__(model, admit=admit)

    def _path(self, name: str) -> Path:
        return self._directory / f"{name}.yaml"

    def _initial_version(self) -> int:
        # Versions must keep increasing across restarts.
        return self._highest_stored_version()

    def _next_version(self) -> str:
        # Another store on the same directory may have written since.
        self._last_version = max(self._last_version, self._highest_stored_version())
        return super()._next_version()

    def _highest_stored_version(self) -> int:
        highest = 0
        for name in self.names():
            stored = self._load(name)
            if stored is not None and stored.resource_version.isdigit():
                highest = max(highest, int(stored.resource_version))
        return highest

    def names(self) -> list[str]:
        if not self._directory.exists():
            return []
        return sorted(path.stem for path in self._directory.glob("*.yaml"))

    def _load(self, name: str) -> ResourceT | None:
        path = self._path(name)
        if not path.exists():
            return None

        try:
            if path.stat().st_size > MAX_STORED_OBJECT_SIZE_BYTES:
                raise DecodeError(
                    f"Stored object exceeds {MAX_STORED_OBJECT_SIZE_BYTES} bytes: {path}"
                )
            raw_data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ServiceRequestError(f"Failed to read {path}: {e}", error=e) from e
        except yaml.YAMLError as e:
            raise DecodeError(f"Invalid YAML in {path}: {e}", error=e) from e

        try:
            return self._model.model_validate(raw_data)
        except ValidationError as e:
            raise DecodeError(f"Invalid {self.kind} in {path}: {e}", error=e) from e

    def _save(self, resource: ResourceT) -> None:
        path = self._path(resource.name)
        tmp_path = path.with_name(f".{path.name}.tmp")
        document = yaml.safe_dump(
            resource.model_dump(mode="json", by_alias=True), sort_keys=False
        )
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(document, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise ServiceRequestError(f"Failed to write {path}: {e}", error=e) from e


def build_clients(
    store_dir: Path | None = None,
    router_domain: str | None = None,
) -> ResourceClients:
    """Assemble one store per resource kind.

    Args:
        store_dir: Root for file-backed stores. In-memory stores when None.
        router_domain: If set, routes are admitted locally under this domain.
    """
    admit = admit_routes(router_domain) if router_domain else None

    def make(model: type[ResourceT], hook: AdmissionHook | None = None) -> MemoryResourceStore:
        if store_dir is None:
            return MemoryResourceStore(model, admit=hook)
        return FileResourceStore(model, store_dir, admit=hook)

    return ResourceClients(
        routes=make(Route, admit),
        services=make(Service),
        config_maps=make(ConfigMap),
        secrets=make(Secret),
        oauth_clients=make(OAuthClient),
        deployments=make(Deployment),
    )
