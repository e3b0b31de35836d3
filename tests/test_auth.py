import pytest

from dbcrawl.core import auth
from dbcrawl.core.auth import AuthError, _format_auth_error, _sanitize_host, get_client
from dbcrawl.core.errors import MetadataSourceUnavailable


@pytest.mark.parametrize(
    "host, expected",
    [
        ("https://adb-1.azuredatabricks.net/?o=123456789", "https://adb-1.azuredatabricks.net"),
        ("https://example.cloud.databricks.com/", "https://example.cloud.databricks.com"),
        (None, None),
    ],
)
def test_sanitize_host(host, expected):
    assert _sanitize_host(host) == expected


def test_expired_token_message_names_the_login_command():
    message = _format_auth_error("token expired, run `databricks auth login`", "dev")

    assert "databricks auth login --profile dev" in message


def test_other_errors_keep_the_sdk_message():
    message = _format_auth_error("cannot resolve host", None)

    assert message == "Databricks authentication failed: cannot resolve host"


def test_config_errors_become_auth_errors(monkeypatch):
    def _config(**kwargs):
        raise ValueError("profile 'missing' not found")

    monkeypatch.setattr(auth, "Config", _config)

    with pytest.raises(AuthError, match="for profile 'missing'") as excinfo:
        get_client("missing")

    assert isinstance(excinfo.value, MetadataSourceUnavailable)
