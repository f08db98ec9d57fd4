"""Default content for every resource the operator manages.

Each ``default_*`` function is a pure function of the Console desired state
and the outputs of the steps it depends on. The sync steps compare these
against what is stored to decide whether anything needs to be written.
"""

from __future__ import annotations

from typing import Any

import yaml

from .models import (
    ConfigMap,
    Console,
    Container,
    Deployment,
    DeploymentSpec,
    OAuthClient,
    ObjectMeta,
    PodTemplate,
    Route,
    RouteSpec,
    Secret,
    Service,
    ServicePort,
    ServiceSpec,
)

# Resource names
CONSOLE_NAME = "console"
ROUTE_NAME = CONSOLE_NAME
SERVICE_NAME = CONSOLE_NAME
DEPLOYMENT_NAME = CONSOLE_NAME
OAUTH_CLIENT_NAME = CONSOLE_NAME
CONFIG_MAP_NAME = "console-config"
SECRET_NAME = "console-oauth-config"
SERVING_CERT_SECRET_NAME = "console-serving-cert"

# Keys
CONFIG_FILE_KEY = "console-config.yaml"
CLIENT_SECRET_KEY = "clientSecret"

# Networking
HTTPS_PORT_NAME = "https"
SERVICE_PORT = 443
CONTAINER_PORT = 8443

# Annotations
SERVING_CERT_ANNOTATION = "service.alpha.openshift.io/serving-cert-secret-name"
CONFIG_VERSION_ANNOTATION = "console.openshift.io/console-config-version"
SECRET_VERSION_ANNOTATION = "console.openshift.io/oauth-secret-version"

# Paths inside the console container
CONFIG_MOUNT_PATH = "/var/console-config"
OAUTH_SECRET_MOUNT_PATH = "/var/oauth-config"
SERVING_CERT_MOUNT_PATH = "/var/serving-cert"
SERVICE_ACCOUNT_CA_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt"

BRANDING = "okd"
DOCUMENTATION_BASE_URL = "https://docs.okd.io"


def console_labels() -> dict[str, str]:
    return {"app": CONSOLE_NAME, "component": "ui"}


def _meta(name: str, namespace: str | None) -> ObjectMeta:
    return ObjectMeta(name=name, namespace=namespace, labels=console_labels())


def https_url(host: str) -> str:
    return f"https://{host}"


def documentation_url(console: Console) -> str:
    """Documentation matching the console version the desired state asks for."""
    return f"{DOCUMENTATION_BASE_URL}/{console.spec.version}/"


# =============================================================================
# Route
# =============================================================================


def default_route(console: Console, namespace: str) -> Route:
    """Route exposing the console service.

    ``host`` is left empty unless the console declares a custom host, in
    which case the router is asked for that host instead of a generated one.
    """
    return Route(
        metadata=_meta(ROUTE_NAME, namespace),
        spec=RouteSpec(
            host=console.spec.custom_host or "",
            to_service=SERVICE_NAME,
            target_port=HTTPS_PORT_NAME,
        ),
    )


def route_host(route: Route | None) -> str:
    if route is None:
        return ""
    return route.spec.host


# =============================================================================
# Service
# =============================================================================


def default_service(console: Console, namespace: str) -> Service:
    meta = _meta(SERVICE_NAME, namespace)
    meta.annotations = {SERVING_CERT_ANNOTATION: SERVING_CERT_SECRET_NAME}
    return Service(
        metadata=meta,
        spec=ServiceSpec(
            ports=[
                ServicePort(
                    name=HTTPS_PORT_NAME,
                    port=SERVICE_PORT,
                    target_port=CONTAINER_PORT,
                )
            ],
            selector=console_labels(),
        ),
    )


# =============================================================================
# ConfigMap
# =============================================================================


def console_server_config(console: Console, host: str) -> dict[str, Any]:
    """The server configuration document mounted into the console."""
    return {
        "apiVersion": "console.openshift.io/v1beta1",
        "kind": "ConsoleConfig",
        "auth": {
            "clientID": OAUTH_CLIENT_NAME,
            "clientSecretFile": f"{OAUTH_SECRET_MOUNT_PATH}/{CLIENT_SECRET_KEY}",
            "logoutRedirect": "",
            "oauthEndpointCAFile": SERVICE_ACCOUNT_CA_FILE,
        },
        "clusterInfo": {
            "consoleBaseAddress": https_url(host),
            "consoleBasePath": "",
        },
        "customization": {
            "branding": BRANDING,
            "documentationBaseURL": documentation_url(console),
        },
        "servingInfo": {
            "bindAddress": f"https://0.0.0.0:{CONTAINER_PORT}",
            "certFile": f"{SERVING_CERT_MOUNT_PATH}/tls.crt",
            "keyFile": f"{SERVING_CERT_MOUNT_PATH}/tls.key",
        },
    }


def default_config_map(console: Console, namespace: str, route: Route) -> ConfigMap:
    document = yaml.safe_dump(console_server_config(console, route.spec.host), sort_keys=True)
    return ConfigMap(
        metadata=_meta(CONFIG_MAP_NAME, namespace),
        data={CONFIG_FILE_KEY: document},
    )


# =============================================================================
# Secret
# =============================================================================


def default_secret(console: Console, namespace: str, value: str) -> Secret:
    return Secret(
        metadata=_meta(SECRET_NAME, namespace),
        data={CLIENT_SECRET_KEY: value},
    )


def secret_value(secret: Secret | None) -> str:
    """Return the client secret, or an empty string when absent."""
    if secret is None:
        return ""
    return secret.data.get(CLIENT_SECRET_KEY, "")


# =============================================================================
# OAuthClient
# =============================================================================


def oauth_redirect_uri(host: str) -> str:
    return f"{https_url(host)}/auth/callback"


def register_console_to_oauth_client(
    client: OAuthClient, route: Route, secret: str
) -> OAuthClient:
    """Point the OAuth client at the console route and give it the shared secret.

    Returns a new object; ``client`` is left untouched.
    """
    registered = client.model_copy(deep=True)
    registered.redirect_uris = [oauth_redirect_uri(route.spec.host)]
    registered.secret = secret
    return registered


def oauth_client_secret(client: OAuthClient | None) -> str:
    if client is None:
        return ""
    return client.secret


def stub_oauth_client() -> OAuthClient:
    """An unregistered OAuth client, as installed alongside the operator."""
    return OAuthClient(metadata=ObjectMeta(name=OAUTH_CLIENT_NAME, labels=console_labels()))


# =============================================================================
# Deployment
# =============================================================================


def content_versions(config_map: ConfigMap, secret: Secret) -> dict[str, str]:
    """Markers tying a deployment to the content it was rolled out with."""
    return {
        CONFIG_VERSION_ANNOTATION: config_map.resource_version,
        SECRET_VERSION_ANNOTATION: secret.resource_version,
    }


def default_deployment(
    console: Console,
    namespace: str,
    image: str,
    config_map: ConfigMap,
    secret: Secret,
) -> Deployment:
    meta = _meta(DEPLOYMENT_NAME, namespace)
    meta.annotations = content_versions(config_map, secret)
    return Deployment(
        metadata=meta,
        spec=DeploymentSpec(
            replicas=console.spec.count,
            selector=console_labels(),
            template=PodTemplate(
                labels=console_labels(),
                annotations=content_versions(config_map, secret),
                containers=[
                    Container(
                        name=CONSOLE_NAME,
                        image=image,
                        command=["/opt/bridge/bin/bridge"],
                        args=[
                            f"--config={CONFIG_MOUNT_PATH}/{CONFIG_FILE_KEY}",
                            f"--v={console.spec.log_level}",
                        ],
                        ports=[CONTAINER_PORT],
                    )
                ],
            ),
        ),
    )


def resource_versions_changed(
    deployment: Deployment, config_map: ConfigMap, secret: Secret
) -> bool:
    """True when the deployment was rolled out with different content."""
    expected = content_versions(config_map, secret)
    recorded = deployment.metadata.annotations
    template = deployment.spec.template.annotations
    return any(recorded.get(k) != v or template.get(k) != v for k, v in expected.items())


def update_resource_versions(
    deployment: Deployment, config_map: ConfigMap, secret: Secret
) -> Deployment:
    """Copy of ``deployment`` with refreshed content markers.

    Updating the pod template annotations is what triggers a new rollout.
    """
    updated = deployment.model_copy(deep=True)
    markers = content_versions(config_map, secret)
    updated.metadata.annotations.update(markers)
    updated.spec.template.annotations.update(markers)
    return updated
