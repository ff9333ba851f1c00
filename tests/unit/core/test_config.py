"""Tests for Settings credential resolution."""

from pathlib import Path

from deskbridge.core.config import Settings


def _settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


def test_connector_credentials_returns_none_when_incomplete():
    """Test that a connector with a missing variable is not configured."""
    settings = _settings(ZENDESK_SUBDOMAIN="acme", ZENDESK_EMAIL="a@acme.com", ZENDESK_TOKEN="")

    assert settings.connector_credentials("zendesk") is None


def test_connector_credentials_for_zendesk():
    """Test that Zendesk credentials map to the adapter's keys."""
    settings = _settings(ZENDESK_SUBDOMAIN="acme", ZENDESK_EMAIL="a@acme.com", ZENDESK_TOKEN="t")

    assert settings.connector_credentials("zendesk") == {
        "subdomain": "acme",
        "email": "a@acme.com",
        "token": "t",
    }


def test_intercom_admin_id_is_optional():
    """Test that the Intercom admin id is added only when set."""
    without_admin = _settings(INTERCOM_TOKEN="tok")
    with_admin = _settings(INTERCOM_TOKEN="tok", INTERCOM_ADMIN_ID="42")

    assert without_admin.connector_credentials("intercom") == {"access_token": "tok"}
    assert with_admin.connector_credentials("intercom") == {
        "access_token": "tok",
        "admin_id": "42",
    }


def test_unknown_connector_has_no_credentials():
    """Test that unknown connectors resolve to None."""
    assert _settings().connector_credentials("desk_com") is None


def test_data_dir_is_a_path():
    """Test that the data dir is exposed as a Path."""
    settings = _settings(DESKBRIDGE_DATA_DIR="/tmp/deskbridge-data")

    assert settings.data_dir == Path("/tmp/deskbridge-data")


def test_kayako_credentials_need_domain_email_and_password():
    """Test that Kayako resolves only when all three variables are set."""
    partial = _settings(KAYAKO_DOMAIN="acme.kayako.com", KAYAKO_EMAIL="a@acme.com")
    complete = _settings(
        KAYAKO_DOMAIN="acme.kayako.com", KAYAKO_EMAIL="a@acme.com", KAYAKO_PASSWORD="pw"
    )

    assert partial.connector_credentials("kayako") is None
    assert complete.connector_credentials("kayako") == {
        "domain": "acme.kayako.com",
        "email": "a@acme.com",
        "password": "pw",
    }
