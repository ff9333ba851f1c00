"""Configuration for deskbridge, loaded from environment variables."""

from pathlib import Path
from typing import Dict, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Deskbridge settings.

    Connector credentials are read from the environment so that the sync engine
    and worker can be driven without any other configuration surface.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Logging
    LOG_LEVEL: str = "INFO"
    LOCAL_DEVELOPMENT: bool = False

    # Storage root for exports (<root>/exports/<connector>) and sandboxes
    DESKBRIDGE_DATA_DIR: str = "./data"

    # Sync worker
    SYNC_INTERVAL_SECONDS: float = 300.0
    SYNC_MAX_CYCLES: Optional[int] = None

    # Zendesk
    ZENDESK_SUBDOMAIN: str = ""
    ZENDESK_EMAIL: str = ""
    ZENDESK_TOKEN: str = ""

    # Freshdesk
    FRESHDESK_SUBDOMAIN: str = ""
    FRESHDESK_API_KEY: str = ""

    # HelpCrunch
    HELPCRUNCH_API_KEY: str = ""

    # Intercom
    INTERCOM_TOKEN: str = ""
    INTERCOM_ADMIN_ID: str = ""

    # Help Scout (OAuth client credentials)
    HELPSCOUT_APP_ID: str = ""
    HELPSCOUT_APP_SECRET: str = ""

    # Zoho Desk
    ZOHO_DESK_ORG_ID: str = ""
    ZOHO_DESK_TOKEN: str = ""

    # Groove
    GROOVE_API_TOKEN: str = ""

    # HubSpot (private app token)
    HUBSPOT_ACCESS_TOKEN: str = ""

    # Kayako
    KAYAKO_DOMAIN: str = ""
    KAYAKO_EMAIL: str = ""
    KAYAKO_PASSWORD: str = ""

    @property
    def data_dir(self) -> Path:
        """Root data directory as a path."""
        return Path(self.DESKBRIDGE_DATA_DIR)

    def connector_credentials(self, short_name: str) -> Optional[Dict[str, str]]:
        """Resolve credentials for a connector from the environment.

        Args:
            short_name: Connector short name (e.g. "zendesk", "zoho_desk")

        Returns:
            Credential dict matching the source's ``create`` signature, or None
            if any required variable is unset.
        """
        env_map = {
            "zendesk": {
                "subdomain": self.ZENDESK_SUBDOMAIN,
                "email": self.ZENDESK_EMAIL,
                "token": self.ZENDESK_TOKEN,
            },
            "freshdesk": {
                "subdomain": self.FRESHDESK_SUBDOMAIN,
                "api_key": self.FRESHDESK_API_KEY,
            },
            "helpcrunch": {"api_key": self.HELPCRUNCH_API_KEY},
            "intercom": {"access_token": self.INTERCOM_TOKEN},
            "helpscout": {
                "app_id": self.HELPSCOUT_APP_ID,
                "app_secret": self.HELPSCOUT_APP_SECRET,
            },
            "zoho_desk": {
                "org_id": self.ZOHO_DESK_ORG_ID,
                "access_token": self.ZOHO_DESK_TOKEN,
            },
            "groove": {"api_token": self.GROOVE_API_TOKEN},
            "hubspot": {"access_token": self.HUBSPOT_ACCESS_TOKEN},
            "kayako": {
                "domain": self.KAYAKO_DOMAIN,
                "email": self.KAYAKO_EMAIL,
                "password": self.KAYAKO_PASSWORD,
            },
        }
        credentials = env_map.get(short_name)
        if credentials is None or not all(credentials.values()):
            return None
        if short_name == "intercom" and self.INTERCOM_ADMIN_ID:
            credentials["admin_id"] = self.INTERCOM_ADMIN_ID
        return credentials


settings = Settings()
