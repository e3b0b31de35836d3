"""Databricks workspace client construction.

Credentials resolve through the Databricks unified authentication
configuration: a named profile in ~/.databrickscfg, or the DATABRICKS_*
environment variables when no profile is given.
"""

import re

from databricks.sdk import WorkspaceClient
from databricks.sdk.core import Config

from dbcrawl.core.errors import MetadataSourceUnavailable


class AuthError(MetadataSourceUnavailable):
    """Raised when a Databricks workspace cannot be authenticated against."""


def _format_auth_error(message: str, profile: str | None) -> str:
    """Turn an SDK configuration error into an actionable message."""
    if re.search(r"databricks auth login", message):
        cmd = "databricks auth login"
        if profile:
            cmd = f"{cmd} --profile {profile}"
        return (
            "Databricks authentication failed; the stored token is no longer valid.\n"
            f"Re-authenticate with:\n  $ {cmd}"
        )
    where = f" for profile '{profile}'" if profile else ""
    return f"Databricks authentication failed{where}: {message}"


def _sanitize_host(host: str | None) -> str | None:
    """
    Normalize a workspace host URL.

    Browser URLs often carry a workspace selector ('?o=123456789') and a
    trailing slash; both break SDK request URLs.
    """
    if not host:
        return host
    host = host.split("?", 1)[0]
    return host.rstrip("/")


def get_client(profile: str | None = None, *, host: str | None = None) -> WorkspaceClient:
    """
    Create a WorkspaceClient for the given profile or host.

    Args:
        profile: Profile name in ~/.databrickscfg.
        host: Workspace URL overriding the profile's host.

    Raises:
        AuthError: If the configuration cannot be resolved.
    """
    kwargs = {}
    if profile:
        kwargs["profile"] = profile
    if host:
        kwargs["host"] = _sanitize_host(host)
    try:
        cfg = Config(**kwargs)
    except ValueError as exc:
        raise AuthError(_format_auth_error(str(exc), profile)) from exc
    cfg.host = _sanitize_host(cfg.host)
    return WorkspaceClient(config=cfg)
