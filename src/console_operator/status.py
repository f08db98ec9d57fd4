"""Console status derived from the resources observed during a pass."""

from __future__ import annotations

import logging

from .models import ConsoleStatus, OAuthClient, OAuthSecretState, Route, Secret
from .subresources import oauth_client_secret, route_host, secret_value

logger = logging.getLogger(__name__)


def secrets_match(credential_value: str, registration_secret: str) -> bool:
    """True when the OAuth client carries the same secret as the credential."""
    return credential_value == registration_secret


def project_status(
    route: Route | None,
    secret: Secret | None,
    oauth_client: OAuthClient | None,
) -> ConsoleStatus:
    """Derive the console status from whatever the pass managed to observe.

    Any argument may be None when the pass stopped before reaching that
    step. Missing inputs yield "not yet established" values, never an error:
    an empty default host, and an ``unknown`` secret state when either the
    credential or the registration was not seen.
    """
    host = route_host(route)

    credential = secret_value(secret)
    if not credential or oauth_client is None:
        oauth_state = OAuthSecretState.UNKNOWN
    elif secrets_match(credential, oauth_client_secret(oauth_client)):
        oauth_state = OAuthSecretState.VALID
    else:
        oauth_state = OAuthSecretState.MISMATCH

    logger.debug(
        "Status projected",
        extra={"default_host_name": host, "oauth_secret": oauth_state.value},
    )
    return ConsoleStatus(default_host_name=host, oauth_secret=oauth_state)
