"""Client configuration loaded from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .exceptions import ConfigurationError

TRUE_VALUES = ("1", "true", "yes", "on")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in TRUE_VALUES


def _blank(value: Optional[str]) -> bool:
    return value is None or str(value).strip() == ""


@dataclass
class Configuration:
    """App Store Connect credentials and transport settings.

    Load from environment using Configuration.from_env(). Values are read
    once; the resulting object is passed explicitly to the client.
    """

    # Credentials
    key_id: Optional[str] = None
    issuer_id: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key: Optional[str] = None

    # Default target app
    app_id: Optional[str] = None
    bundle_id: Optional[str] = None

    # TLS
    skip_crl_verification: bool = True
    verify_ssl: bool = True
    crl_file: Optional[str] = None
    use_curl: bool = False

    # Asset uploads (retries apply per upload part)
    upload_retries: int = 0
    upload_retry_sleep: float = 1.0

    @classmethod
    def from_env(cls) -> "Configuration":
        """Load configuration from environment variables.

        Required environment variables:
            APP_STORE_CONNECT_KEY_ID: API key ID
            APP_STORE_CONNECT_ISSUER_ID: Issuer ID
            APP_STORE_CONNECT_PRIVATE_KEY_PATH: Path to the .p8 key
                (or APP_STORE_CONNECT_PRIVATE_KEY with the PEM content)

        Optional environment variables (with defaults):
            APP_STORE_CONNECT_APP_ID, APP_STORE_CONNECT_BUNDLE_ID
            APP_STORE_CONNECT_SKIP_CRL_VERIFICATION (true)
            APP_STORE_CONNECT_VERIFY_SSL (true)
            APP_STORE_CONNECT_CRL_FILE
            APP_STORE_CONNECT_USE_CURL (false)
            APP_STORE_CONNECT_UPLOAD_RETRIES (0)
            APP_STORE_CONNECT_UPLOAD_RETRY_SLEEP (1.0)
        """
        try:
            upload_retries = int(os.getenv("APP_STORE_CONNECT_UPLOAD_RETRIES", "0") or 0)
            upload_retry_sleep = float(
                os.getenv("APP_STORE_CONNECT_UPLOAD_RETRY_SLEEP", "1.0") or 1.0
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid upload retry setting: {e}")

        return cls(
            key_id=os.getenv("APP_STORE_CONNECT_KEY_ID"),
            issuer_id=os.getenv("APP_STORE_CONNECT_ISSUER_ID"),
            private_key_path=os.getenv("APP_STORE_CONNECT_PRIVATE_KEY_PATH"),
            private_key=os.getenv("APP_STORE_CONNECT_PRIVATE_KEY"),
            app_id=os.getenv("APP_STORE_CONNECT_APP_ID"),
            bundle_id=os.getenv("APP_STORE_CONNECT_BUNDLE_ID"),
            skip_crl_verification=_env_bool(
                "APP_STORE_CONNECT_SKIP_CRL_VERIFICATION", True
            ),
            verify_ssl=_env_bool("APP_STORE_CONNECT_VERIFY_SSL", True),
            crl_file=os.getenv("APP_STORE_CONNECT_CRL_FILE") or None,
            use_curl=_env_bool("APP_STORE_CONNECT_USE_CURL", False),
            upload_retries=upload_retries,
            upload_retry_sleep=upload_retry_sleep,
        )

    def missing_keys(self) -> List[str]:
        missing = []
        if _blank(self.key_id):
            missing.append("APP_STORE_CONNECT_KEY_ID")
        if _blank(self.issuer_id):
            missing.append("APP_STORE_CONNECT_ISSUER_ID")
        if _blank(self.private_key_path) and _blank(self.private_key):
            missing.append("APP_STORE_CONNECT_PRIVATE_KEY_PATH")
        return missing

    def valid(self) -> bool:
        return not self.missing_keys()

    def validate(self) -> None:
        """Raise ConfigurationError unless credentials are usable."""
        missing = self.missing_keys()
        if missing:
            raise ConfigurationError(f"Missing configuration: {', '.join(missing)}")

        if not _blank(self.private_key):
            return

        key_path = Path(self.private_key_path)
        if not key_path.exists():
            raise ConfigurationError(
                f"Private key file not found: {self.private_key_path}"
            )
        if not os.access(key_path, os.R_OK):
            raise ConfigurationError(
                f"Private key file not readable: {self.private_key_path}"
            )
