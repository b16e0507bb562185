"""OAuth2 authentication for Calmirror."""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

import qrcode
import yaml
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build

from .client import GoogleEventService
from .config import get_credentials_path, get_oauth2_config_path
from .errors import ConfigError

OOB_REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"

logger = logging.getLogger(__name__)


@dataclass
class OAuth2Config:
    """OAuth2 client configuration for Google API authentication."""

    client_id: str
    client_secret: str
    scopes: list[str] = field(
        default_factory=lambda: [
            "https://www.googleapis.com/auth/calendar.events",
        ]
    )


class GoogleAuthenticator:
    """Handles Google OAuth2 authentication for one configured account."""

    def __init__(self, account_name: str, oauth2_config: OAuth2Config):
        self.account_name = account_name
        self.oauth2_config = oauth2_config
        self.credentials_path = get_credentials_path(account_name)

    def authenticate(self) -> Credentials:
        """Return valid credentials, refreshing or re-running consent as needed."""
        credentials = self.load_credentials()

        if credentials and credentials.valid:
            return credentials

        if credentials and credentials.expired and credentials.refresh_token:
            try:
                credentials.refresh(Request())
                self._save_credentials(credentials)
                return credentials
            except RefreshError:
                print(
                    f"⚠️  Refresh token expired for {self.account_name}, re-authenticating..."
                )

        return self._perform_consent_flow()

    def load_credentials(self) -> Credentials | None:
        """Load stored credentials without any interaction."""
        if not self.credentials_path.exists():
            return None

        try:
            with open(self.credentials_path) as f:
                return Credentials.from_authorized_user_info(json.load(f))
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️  Error loading credentials for {self.account_name}: {e}")
            return None

    def _save_credentials(self, credentials: Credentials):
        self.credentials_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.credentials_path, "w") as f:
            f.write(credentials.to_json())

        os.chmod(self.credentials_path, 0o600)

    def _perform_consent_flow(self) -> Credentials:
        """Run the installed-app flow with a manually pasted authorization code."""
        print(f"🔐 Starting OAuth2 authentication for {self.account_name}...")

        flow = Flow.from_client_config(
            {
                "installed": {
                    "client_id": self.oauth2_config.client_id,
                    "client_secret": self.oauth2_config.client_secret,
                    "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                    "token_uri": "https://oauth2.googleapis.com/token",
                    "redirect_uris": [OOB_REDIRECT_URI],
                }
            },
            scopes=self.oauth2_config.scopes,
        )
        flow.redirect_uri = OOB_REDIRECT_URI

        auth_url, _ = flow.authorization_url(
            access_type="offline",
            include_granted_scopes="true",
            prompt="consent",  # Force consent screen to get refresh token
        )

        self._display_qr_code(auth_url)
        print(f"🔗 Or visit this URL manually: {auth_url}")

        auth_code = input("\n📝 Enter the authorization code from Google: ").strip()
        if not auth_code:
            raise ConfigError("No authorization code provided")

        flow.fetch_token(code=auth_code)
        credentials = flow.credentials
        self._save_credentials(credentials)

        print(f"✅ Authentication successful for {self.account_name}!")
        return credentials

    def _display_qr_code(self, auth_url: str):
        qr = qrcode.QRCode(version=1, box_size=2, border=2)
        qr.add_data(auth_url)
        qr.make(fit=True)

        print("📱 QR Code for Mobile Authentication:")
        print("=" * 50)
        qr.print_ascii(invert=True)
        print("=" * 50)


def build_event_service(account_name: str, oauth2_config: OAuth2Config) -> GoogleEventService:
    """Build an event service for a stored, already-authorized account."""
    credentials = GoogleAuthenticator(account_name, oauth2_config).load_credentials()
    if not credentials:
        raise ConfigError(
            f"No credentials found for account {account_name}; run 'calmirror auth {account_name}'"
        )

    if credentials.expired and credentials.refresh_token:
        try:
            credentials.refresh(Request())
        except RefreshError as e:
            raise ConfigError(
                f"Credentials for {account_name} could not be refreshed; run 'calmirror auth {account_name}'"
            ) from e

    service: Any = build("calendar", "v3", credentials=credentials, cache_discovery=False)
    logger.info(f"✅ Initialized Calendar API service for {account_name}")
    return GoogleEventService(service)


def create_oauth2_config_file():
    """Create a template OAuth2 configuration file."""
    config_path = get_oauth2_config_path()

    template = """# OAuth2 Configuration for Google Calendar API
# Fill in your Google Cloud Console credentials

google_oauth2:
  client_id: "your-client-id.apps.googleusercontent.com"
  client_secret: "your-client-secret"
  scopes:
    - "https://www.googleapis.com/auth/calendar.events"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(template)

    return config_path


def load_oauth2_config() -> OAuth2Config | None:
    """Load OAuth2 configuration from file."""
    config_path = get_oauth2_config_path()

    if not config_path.exists():
        logger.warning(f"⚠️  OAuth2 configuration not found at {config_path}")
        return None

    with open(config_path) as f:
        config_data = yaml.safe_load(f) or {}

    oauth2_data = config_data.get("google_oauth2", {})
    try:
        config = OAuth2Config(
            client_id=oauth2_data["client_id"],
            client_secret=oauth2_data["client_secret"],
        )
    except KeyError as e:
        raise ConfigError(f"OAuth2 configuration is missing {e}") from e
    if oauth2_data.get("scopes"):
        config.scopes = list(oauth2_data["scopes"])
    return config
