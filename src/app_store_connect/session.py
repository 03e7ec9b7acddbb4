"""
Web session cookies for the App Store Connect Resolution Center.

The Resolution Center (rejection messages) lives on Apple's internal IRIS
API, which only accepts browser session cookies. Generate them with
``fastlane spaceauth -u you@example.com`` and export FASTLANE_SESSION, or
save the session to ``~/.app_store_connect_session``.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

import yaml

logger = logging.getLogger(__name__)

SESSION_ENV_VAR = "FASTLANE_SESSION"
SESSION_FILE = Path.home() / ".app_store_connect_session"
AUTH_COOKIE = "myacinfo"

COOKIE_ATTRIBUTES = {
    "path",
    "domain",
    "expires",
    "max-age",
    "secure",
    "httponly",
    "samesite",
}


class Session:
    """Cookie jar loaded from FASTLANE_SESSION or the session file."""

    def __init__(self, session_data: Optional[str] = None, session_file: Path = SESSION_FILE):
        self.session_file = Path(session_file)
        self.cookies: Dict[str, str] = {}
        if session_data is None:
            session_data = os.getenv(SESSION_ENV_VAR) or self._read_session_file()
        if session_data:
            self._parse(session_data)

    def valid(self) -> bool:
        return AUTH_COOKIE in self.cookies

    def cookie_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())

    def save(self, session_data: str) -> None:
        """Persist raw session data for later runs (owner-only permissions)."""
        self.session_file.write_text(session_data)
        os.chmod(self.session_file, 0o600)
        self.cookies = {}
        self._parse(session_data)

    def clear(self) -> None:
        self.cookies = {}
        if self.session_file.exists():
            self.session_file.unlink()

    def _read_session_file(self) -> Optional[str]:
        try:
            if self.session_file.exists():
                return self.session_file.read_text()
        except OSError as e:
            logger.warning(f"Could not read session file {self.session_file}: {e}")
        return None

    def _parse(self, session_data: str) -> None:
        # fastlane dumps HTTP::Cookie objects as tagged YAML, which safe_load rejects
        if "!ruby/object" in session_data:
            self._parse_fastlane_cookies(session_data)
            return

        try:
            parsed = yaml.safe_load(session_data)
        except yaml.YAMLError:
            self._parse_cookie_string(session_data)
            return

        if isinstance(parsed, list):
            for cookie in parsed:
                self._parse_cookie_string(str(cookie))
        elif isinstance(parsed, str):
            self._parse_cookie_string(parsed)
        else:
            self._parse_cookie_string(session_data)

    def _parse_fastlane_cookies(self, session_data: str) -> None:
        current_name = None
        for raw_line in session_data.splitlines():
            line = raw_line.strip()
            if line.startswith("name:"):
                current_name = line[len("name:"):].strip()
            elif line.startswith("value:") and current_name:
                self.cookies[current_name] = line[len("value:"):].strip()
                current_name = None

    def _parse_cookie_string(self, cookie_string: str) -> None:
        for part in cookie_string.split(";"):
            part = part.strip()
            if not part or "=" not in part:
                continue
            name, value = part.split("=", 1)
            name = name.strip()
            if name.lower() in COOKIE_ATTRIBUTES:
                continue
            self.cookies[name] = value.strip()
