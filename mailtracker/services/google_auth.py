"""
Google OAuth authentication service for the mail tracker.

Handles the OAuth 2.0 installed-app flow and token storage for the account
that owns the tracked mailbox and spreadsheet.
"""
import logging
from enum import Enum
from pathlib import Path
from typing import Optional

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from config.settings import settings

logger = logging.getLogger(__name__)

# Label changes on threads and read-write access to the tracker sheet
SCOPES = [
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/spreadsheets",
]


class GoogleAccount(Enum):
    """Google account types."""
    PERSONAL = "personal"


class GoogleAuthService:
    """
    Google OAuth authentication service.

    Handles:
    - Loading credentials from file
    - Browser-based OAuth flow
    - Token storage and retrieval
    - Automatic token refresh
    """

    def __init__(
        self,
        credentials_path: str,
        token_path: str,
        account_type: GoogleAccount = GoogleAccount.PERSONAL
    ):
        """
        Initialize Google Auth service.

        Args:
            credentials_path: Path to OAuth credentials JSON file
            token_path: Path to store/load token JSON file
            account_type: Type of account
        """
        self.credentials_path = Path(credentials_path)
        self.token_path = Path(token_path)
        self.account_type = account_type
        self.scopes = SCOPES
        self._credentials: Optional[Credentials] = None

    def get_credentials(self) -> Credentials:
        """
        Get valid Google credentials.

        Will:
        1. Load existing token if available
        2. Refresh token if expired
        3. Initiate OAuth flow if no valid token

        Returns:
            Valid Google credentials

        Raises:
            FileNotFoundError: If credentials file doesn't exist
        """
        if not self.credentials_path.exists():
            raise FileNotFoundError(
                f"Google credentials file not found at {self.credentials_path}. "
                f"Please download OAuth credentials from Google Cloud Console."
            )

        if self.token_path.exists():
            try:
                self._credentials = Credentials.from_authorized_user_file(
                    str(self.token_path),
                    self.scopes
                )
            except ValueError as e:
                logger.warning(f"Failed to load existing token: {e}")
                self._credentials = None

        if self._credentials:
            if self._credentials.valid:
                return self._credentials

            if self._credentials.expired and self._credentials.refresh_token:
                try:
                    logger.info(f"Refreshing expired token for {self.account_type.value} account")
                    self._credentials.refresh(Request())
                    self._save_token(self._credentials)
                    return self._credentials
                except Exception as e:
                    logger.warning(f"Token refresh failed (may be revoked): {e}")
                    # Fall through to re-authenticate

        logger.info(f"Initiating OAuth flow for {self.account_type.value} account")
        self._credentials = self._run_oauth_flow()
        self._save_token(self._credentials)
        return self._credentials

    def _run_oauth_flow(self) -> Credentials:
        """Run the browser-based OAuth flow."""
        flow = InstalledAppFlow.from_client_secrets_file(
            str(self.credentials_path),
            self.scopes
        )

        return flow.run_local_server(
            port=0,
            prompt="consent",
            access_type="offline"  # Get refresh token
        )

    def _save_token(self, credentials: Credentials) -> None:
        """Save credentials to token file."""
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        self.token_path.write_text(credentials.to_json())
        logger.info(f"Saved token to {self.token_path}")

    def revoke_token(self) -> bool:
        """
        Delete the local token file.

        Returns:
            True if successful
        """
        if self.token_path.exists():
            self.token_path.unlink()
            logger.info(f"Deleted token file {self.token_path}")

        self._credentials = None
        return True

    @property
    def is_authenticated(self) -> bool:
        """Check if we have valid credentials."""
        if not self.token_path.exists():
            return False

        try:
            creds = Credentials.from_authorized_user_file(
                str(self.token_path),
                self.scopes
            )
            return bool(creds.valid or (creds.expired and creds.refresh_token))
        except ValueError:
            return False


# Singleton instances for each account
_auth_services: dict[GoogleAccount, GoogleAuthService] = {}


def get_google_auth(
    account_type: GoogleAccount = GoogleAccount.PERSONAL,
    credentials_path: Optional[str] = None,
    token_path: Optional[str] = None
) -> GoogleAuthService:
    """
    Get or create Google auth service for an account type.

    Args:
        account_type: Account type
        credentials_path: Override settings credentials path
        token_path: Override settings token path

    Returns:
        GoogleAuthService instance
    """
    if account_type not in _auth_services:
        _auth_services[account_type] = GoogleAuthService(
            credentials_path=credentials_path or str(settings.google_credentials_path),
            token_path=token_path or str(settings.google_token_path),
            account_type=account_type
        )

    return _auth_services[account_type]
