"""Tests for default resource content."""

from __future__ import annotations

import yaml

from console_operator.models import ConfigMap, Console, ConsoleSpec, ObjectMeta, Secret
from console_operator.subresources import (
    CLIENT_SECRET_KEY,
    CONFIG_FILE_KEY,
    CONFIG_VERSION_ANNOTATION,
    SECRET_VERSION_ANNOTATION,
    SERVING_CERT_ANNOTATION,
    default_config_map,
    default_deployment,
    default_route,
    default_secret,
    default_service,
    oauth_redirect_uri,
    register_console_to_oauth_client,
    resource_versions_changed,
    route_host,
    secret_value,
    stub_oauth_client,
    update_resource_versions,
)

NAMESPACE = "openshift-console"


def stored_config_map(version: str) -> ConfigMap:
    return ConfigMap(metadata=ObjectMeta(name="console-config", resourceVersion=version))


def stored_secret(version: str) -> Secret:
    return Secret(
        metadata=ObjectMeta(name="console-oauth-config", resourceVersion=version),
        data={CLIENT_SECRET_KEY: "value"},
    )


class TestRoute:
    """Tests for the route."""

    def test_host_empty_by_default(self) -> None:
        """Test the router is left to assign the host."""
        route = default_route(Console(), NAMESPACE)

        assert route.spec.host == ""
        assert route.spec.to_service == "console"
        assert route.spec.tls_termination == "reencrypt"
        assert route.metadata.namespace == NAMESPACE

    def test_custom_host_requested(self) -> None:
        console = Console(spec=ConsoleSpec(custom_host="console.example.org"))

        assert default_route(console, NAMESPACE).spec.host == "console.example.org"

    def test_route_host_of_missing_route(self) -> None:
        assert route_host(None) == ""


class TestService:
    def test_https_port_and_serving_cert(self) -> None:
        service = default_service(Console(), NAMESPACE)

        assert [(p.port, p.target_port) for p in service.spec.ports] == [(443, 8443)]
        assert SERVING_CERT_ANNOTATION in service.metadata.annotations


class TestConfigMap:
    """Tests for the console server config."""

    def test_base_address_follows_route(self) -> None:
        """Test the config embeds the route host."""
        route = default_route(Console(), NAMESPACE)
        route.spec.host = "console.example.com"

        config_map = default_config_map(Console(), NAMESPACE, route)

        document = yaml.safe_load(config_map.data[CONFIG_FILE_KEY])
        assert document["kind"] == "ConsoleConfig"
        assert document["clusterInfo"]["consoleBaseAddress"] == "https://console.example.com"
        assert document["auth"]["clientID"] == "console"

    def test_content_is_deterministic(self) -> None:
        """Test identical inputs render byte-identical config."""
        route = default_route(Console(), NAMESPACE)
        route.spec.host = "console.example.com"

        first = default_config_map(Console(), NAMESPACE, route)
        second = default_config_map(Console(), NAMESPACE, route)

        assert first.data == second.data

    def test_documentation_follows_console_version(self) -> None:
        """Test the desired console version is rendered into the config."""
        route = default_route(Console(), NAMESPACE)
        route.spec.host = "console.example.com"

        older = default_config_map(Console(spec=ConsoleSpec(version="4.0")), NAMESPACE, route)
        newer = default_config_map(Console(spec=ConsoleSpec(version="4.1")), NAMESPACE, route)

        document = yaml.safe_load(newer.data[CONFIG_FILE_KEY])
        assert document["customization"]["documentationBaseURL"] == "https://docs.okd.io/4.1/"
        assert older.data != newer.data


class TestSecret:
    def test_value_round_trip(self) -> None:
        secret = default_secret(Console(), NAMESPACE, "generated")

        assert secret_value(secret) == "generated"

    def test_missing_secret_has_empty_value(self) -> None:
        assert secret_value(None) == ""


class TestOAuthClient:
    """Tests for OAuth client registration."""

    def test_register_sets_redirect_and_secret(self) -> None:
        route = default_route(Console(), NAMESPACE)
        route.spec.host = "console.example.com"
        client = stub_oauth_client()

        registered = register_console_to_oauth_client(client, route, "value")

        assert registered.redirect_uris == [oauth_redirect_uri("console.example.com")]
        assert registered.redirect_uris == ["https://console.example.com/auth/callback"]
        assert registered.secret == "value"
        assert client.redirect_uris == []
        assert client.secret == ""


class TestDeployment:
    """Tests for the deployment and its content markers."""

    def test_spec_from_console(self) -> None:
        """Test replicas and log level come from the console spec."""
        console = Console(spec=ConsoleSpec(count=3, log_level=7))

        deployment = default_deployment(
            console, NAMESPACE, "quay.io/console:v2", stored_config_map("4"), stored_secret("9")
        )

        container = deployment.spec.template.containers[0]
        assert deployment.spec.replicas == 3
        assert container.image == "quay.io/console:v2"
        assert "--v=7" in container.args
        assert "--config=/var/console-config/console-config.yaml" in container.args
        assert deployment.metadata.annotations[CONFIG_VERSION_ANNOTATION] == "4"
        assert deployment.spec.template.annotations[SECRET_VERSION_ANNOTATION] == "9"

    def test_markers_unchanged(self) -> None:
        deployment = default_deployment(
            Console(), NAMESPACE, "image", stored_config_map("4"), stored_secret("9")
        )

        assert not resource_versions_changed(
            deployment, stored_config_map("4"), stored_secret("9")
        )

    def test_markers_changed(self) -> None:
        """Test a new config map version is detected."""
        deployment = default_deployment(
            Console(), NAMESPACE, "image", stored_config_map("4"), stored_secret("9")
        )

        assert resource_versions_changed(deployment, stored_config_map("5"), stored_secret("9"))

    def test_template_marker_drift_detected(self) -> None:
        """Test a pod template missing its markers counts as changed."""
        deployment = default_deployment(
            Console(), NAMESPACE, "image", stored_config_map("4"), stored_secret("9")
        )
        deployment.spec.template.annotations.clear()

        assert resource_versions_changed(deployment, stored_config_map("4"), stored_secret("9"))

    def test_update_markers_only(self) -> None:
        """Test updating markers leaves the rest of the deployment alone."""
        deployment = default_deployment(
            Console(), NAMESPACE, "image", stored_config_map("4"), stored_secret("9")
        )
        deployment.metadata.annotations["deployment.kubernetes.io/revision"] = "2"

        updated = update_resource_versions(
            deployment, stored_config_map("5"), stored_secret("10")
        )

        assert updated.spec.template.annotations[CONFIG_VERSION_ANNOTATION] == "5"
        assert updated.metadata.annotations[SECRET_VERSION_ANNOTATION] == "10"
        assert updated.metadata.annotations["deployment.kubernetes.io/revision"] == "2"
        assert updated.spec.template.containers == deployment.spec.template.containers
        assert deployment.spec.template.annotations[CONFIG_VERSION_ANNOTATION] == "4"
