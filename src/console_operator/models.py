"""Pydantic models for the Console desired state and the managed resources.

These models provide:
1. Type-safe YAML parsing of the Console desired state
2. Validation at the boundary (fail fast, fail loudly)
3. A uniform shape for the six resource kinds the operator manages
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, ClassVar

from pydantic import BaseModel, Field, field_validator

CONSOLE_API_VERSION = "console.openshift.io/v1alpha1"
CONSOLE_KIND = "Console"
DEFAULT_CONSOLE_NAME = "console"
DEFAULT_CONSOLE_VERSION = "4.0"

VALID_HOSTNAME_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"

# =============================================================================
# Shared Metadata
# =============================================================================


class ObjectMeta(BaseModel):
    """Identity and bookkeeping common to every stored object."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1, max_length=253)]
    namespace: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)

    # Opaque version token assigned by the store on every write.
    # Empty on objects that have not been persisted yet.
    resource_version: str = Field("", alias="resourceVersion")


class Resource(BaseModel):
    """Base class for managed resources."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    kind: ClassVar[str] = ""

    metadata: ObjectMeta

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def resource_version(self) -> str:
        return self.metadata.resource_version

    def content(self) -> dict[str, Any]:
        """Return the object without its version token.

        Two objects with equal content are the same from the store's point
        of view, regardless of which version they were read at.
        """
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"metadata": {"resource_version"}},
        )


# =============================================================================
# Network Endpoint (Route)
# =============================================================================


class RouteSpec(BaseModel):
    """Route specification. ``host`` is populated by the router once admitted."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    host: str = ""
    to_service: str = Field(alias="to")
    target_port: str = Field("https", alias="targetPort")
    tls_termination: str = Field("reencrypt", alias="tlsTermination")
    insecure_edge_termination_policy: str = Field(
        "Redirect", alias="insecureEdgeTerminationPolicy"
    )


class Route(Resource):
    kind: ClassVar[str] = "Route"

    spec: RouteSpec


# =============================================================================
# Traffic Endpoint (Service)
# =============================================================================


class ServicePort(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str
    port: Annotated[int, Field(ge=1, le=65535)]
    target_port: Annotated[int, Field(ge=1, le=65535, alias="targetPort")]
    protocol: str = "TCP"


class ServiceSpec(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    ports: list[ServicePort] = Field(default_factory=list)
    selector: dict[str, str] = Field(default_factory=dict)
    session_affinity: str = Field("None", alias="sessionAffinity")


class Service(Resource):
    kind: ClassVar[str] = "Service"

    spec: ServiceSpec


# =============================================================================
# Config Artifact (ConfigMap) and Credential (Secret)
# =============================================================================


class ConfigMap(Resource):
    kind: ClassVar[str] = "ConfigMap"

    data: dict[str, str] = Field(default_factory=dict)


class Secret(Resource):
    """Opaque secret. Values are kept as plain strings, not base64."""

    kind: ClassVar[str] = "Secret"

    type: str = "Opaque"
    data: dict[str, str] = Field(default_factory=dict)


# =============================================================================
# Identity-Provider Registration (OAuthClient)
# =============================================================================


class OAuthClient(Resource):
    """Cluster-scoped OAuth client the console authenticates as."""

    kind: ClassVar[str] = "OAuthClient"

    secret: str = ""
    redirect_uris: list[str] = Field(default_factory=list, alias="redirectURIs")
    grant_method: str = Field("auto", alias="grantMethod")


# =============================================================================
# Workload Deployment
# =============================================================================


class Container(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str
    image: str
    command: list[str] = Field(default_factory=list)
    args: list[str] = Field(default_factory=list)
    ports: list[int] = Field(default_factory=list)


class PodTemplate(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    containers: list[Container] = Field(default_factory=list)


class DeploymentSpec(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    replicas: Annotated[int, Field(ge=0)] = 1
    selector: dict[str, str] = Field(default_factory=dict)
    template: PodTemplate = Field(default_factory=PodTemplate)


class Deployment(Resource):
    kind: ClassVar[str] = "Deployment"

    spec: DeploymentSpec


# =============================================================================
# Console Desired State
# =============================================================================


class OAuthSecretState(str, Enum):
    """Agreement between the credential and the OAuth client secret."""

    VALID = "valid"
    MISMATCH = "mismatch"
    UNKNOWN = "unknown"  # One side has not been established yet


class ConsoleSpec(BaseModel):
    """Desired console configuration."""

    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    version: str = DEFAULT_CONSOLE_VERSION
    count: Annotated[int, Field(ge=1, le=10)] = 1
    custom_host: str | None = Field(None, alias="customHost")
    log_level: Annotated[int, Field(ge=0, le=10, alias="logLevel")] = 2

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if not v or not re.match(r"^\d+\.\d+(\.\d+)?$", v):
            raise ValueError("version must look like MAJOR.MINOR (e.g. 4.0)")
        return v

    @field_validator("custom_host")
    @classmethod
    def validate_custom_host(cls, v: str | None) -> str | None:
        if v is None or v == "":
            return None
        v = v.lower()
        if len(v) > 253 or not re.match(VALID_HOSTNAME_PATTERN, v):
            raise ValueError(f"customHost must be a DNS hostname: {v}")
        return v


class ConsoleStatus(BaseModel):
    """Externally visible status, derived at the end of every pass."""

    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    default_host_name: str = Field("", alias="defaultHostName")
    oauth_secret: OAuthSecretState = Field(OAuthSecretState.UNKNOWN, alias="oauthSecret")

    @property
    def credential_agreement(self) -> bool:
        return self.oauth_secret == OAuthSecretState.VALID


class ConsoleMeta(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    name: str = DEFAULT_CONSOLE_NAME
    labels: dict[str, str] = Field(default_factory=dict)


class Console(BaseModel):
    """The desired state descriptor a pass tries to realize.

    Immutable: a pass never mutates its input, it returns an updated copy.
    """

    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    api_version: str = Field(CONSOLE_API_VERSION, alias="apiVersion")
    kind: str = CONSOLE_KIND
    metadata: ConsoleMeta = Field(default_factory=ConsoleMeta)
    spec: ConsoleSpec = Field(default_factory=ConsoleSpec)
    status: ConsoleStatus = Field(default_factory=ConsoleStatus)

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        if v != CONSOLE_KIND:
            raise ValueError(f"kind must be {CONSOLE_KIND}")
        return v

    def with_status(self, status: ConsoleStatus) -> Console:
        """Return a copy of this console carrying ``status``."""
        return self.model_copy(update={"status": status})

    def to_document(self) -> dict[str, Any]:
        """Serialize to a Kubernetes-style mapping for YAML output."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
