"""
Apple App Store Connect API client.

This module provides the client core: credentials, JWT signing, request
dispatch through a pluggable transport, error mapping and JSON:API
pagination. Resource-specific methods live in :mod:`app_store_connect.resources`
and are mixed into :class:`AppStoreConnectAPI`.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

import jwt
from ratelimit import limits, sleep_and_retry
from requests.models import PreparedRequest

from .config import Configuration
from .exceptions import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    PermissionError,
    RateLimitError,
    ServerError,
    ValidationError,
)
from .resources import (
    AppInfoMixin,
    AppsMixin,
    BetaTestingMixin,
    CustomerReviewsMixin,
    InAppPurchasesMixin,
    PricingMixin,
    PrivacyMixin,
    ReleasesMixin,
    ResolutionCenterMixin,
    ScreenshotsMixin,
    SubscriptionsMixin,
    UsersMixin,
    VersionsMixin,
)
from .session import Session
from .transport import HttpResponse, Transport, build_transport
from .uploads import AssetUploader, RetryPolicy, wait_for_asset
from .utils import dig

logger = logging.getLogger(__name__)

TOKEN_LIFETIME = 20 * 60  # max allowed by Apple
TOKEN_REFRESH_MARGIN = 60


class AppStoreConnectAPI(
    AppsMixin,
    VersionsMixin,
    AppInfoMixin,
    ReleasesMixin,
    SubscriptionsMixin,
    InAppPurchasesMixin,
    CustomerReviewsMixin,
    BetaTestingMixin,
    PricingMixin,
    UsersMixin,
    ScreenshotsMixin,
    PrivacyMixin,
    ResolutionCenterMixin,
):
    """
    Apple App Store Connect API client.

    Args:
        config: Base configuration (defaults to ``Configuration.from_env()``)
        key_id: Your App Store Connect API key ID
        issuer_id: Your App Store Connect API issuer ID
        private_key_path: Path to your .p8 private key file
        private_key: PEM content of the key, instead of a path
        app_id: Default app for methods taking ``target_app_id``
        bundle_id: Bundle identifier of the default app
        transport: HTTP backend; built from the configuration when omitted
        session: Web session for Resolution Center calls

    Keyword arguments override the matching configuration fields.
    """

    BASE_URL = "https://api.appstoreconnect.apple.com/v1"
    IRIS_URL = "https://appstoreconnect.apple.com/iris/v1"

    def __init__(
        self,
        config: Optional[Configuration] = None,
        *,
        key_id: Optional[str] = None,
        issuer_id: Optional[str] = None,
        private_key_path: Optional[Union[str, Path]] = None,
        private_key: Optional[str] = None,
        app_id: Optional[str] = None,
        bundle_id: Optional[str] = None,
        transport: Optional[Transport] = None,
        skip_crl_verification: Optional[bool] = None,
        verify_ssl: Optional[bool] = None,
        crl_file: Optional[str] = None,
        use_curl: Optional[bool] = None,
        upload_retries: Optional[int] = None,
        upload_retry_sleep: Optional[float] = None,
        session: Optional[Session] = None,
    ):
        """Initialize the App Store Connect API client."""
        overrides = {
            "key_id": key_id,
            "issuer_id": issuer_id,
            "private_key_path": str(private_key_path) if private_key_path else None,
            "private_key": private_key,
            "app_id": app_id,
            "bundle_id": bundle_id,
            "skip_crl_verification": skip_crl_verification,
            "verify_ssl": verify_ssl,
            "crl_file": crl_file,
            "use_curl": use_curl,
            "upload_retries": upload_retries,
            "upload_retry_sleep": upload_retry_sleep,
        }
        base = config if config is not None else Configuration.from_env()
        self.config = replace(
            base, **{key: value for key, value in overrides.items() if value is not None}
        )
        self.config.validate()

        self.key_id = self.config.key_id
        self.issuer_id = self.config.issuer_id
        self.private_key_path = (
            Path(self.config.private_key_path) if self.config.private_key_path else None
        )
        self.app_id = self.config.app_id
        self.bundle_id = self.config.bundle_id
        self.upload_retry_policy = RetryPolicy(
            max_retries=self.config.upload_retries,
            base_sleep=self.config.upload_retry_sleep,
        )
        self.transport = transport or build_transport(self.config)
        self.session = session if session is not None else Session()
        self._token: Optional[str] = None
        self._token_expiry: Optional[int] = None

    # ===== AUTHENTICATION =====

    def _load_private_key(self) -> str:
        """Load the private key from configuration or file."""
        if self.config.private_key:
            return self.config.private_key
        try:
            with open(self.private_key_path, "r") as f:
                return f.read()
        except (IOError, TypeError) as e:
            raise AuthenticationError(f"Failed to load private key: {e}")

    def _generate_token(self) -> str:
        """Generate a JWT token for App Store Connect API."""
        current_time = int(datetime.now(timezone.utc).timestamp())

        if self._token and self._token_expiry and current_time < self._token_expiry:
            return self._token

        private_key = self._load_private_key()
        expiry = current_time + TOKEN_LIFETIME

        payload = {
            "iss": self.issuer_id,
            "iat": current_time,
            "exp": expiry,
            "aud": "appstoreconnect-v1",
        }

        headers = {"alg": "ES256", "kid": self.key_id, "typ": "JWT"}

        try:
            self._token = jwt.encode(
                payload, private_key, algorithm="ES256", headers=headers
            )
        except Exception as e:
            raise AuthenticationError(f"Failed to generate JWT token: {e}")

        self._token_expiry = expiry - TOKEN_REFRESH_MARGIN
        return self._token

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests."""
        token = self._generate_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    # ===== REQUESTS =====

    def _build_url(
        self, url: Optional[str], endpoint: Optional[str], params: Optional[Dict]
    ) -> str:
        if url is None and endpoint is not None:
            url = f"{self.BASE_URL}{endpoint}"
        elif url is None:
            raise ValidationError("Either url or endpoint must be provided")

        if params:
            prepared = PreparedRequest()
            prepared.prepare_url(url, params)
            url = prepared.url
        return url

    def _make_request_raw(
        self,
        method: str = "GET",
        url: Optional[str] = None,
        endpoint: Optional[str] = None,
        params: Optional[Dict] = None,
        data: Optional[Dict] = None,
    ) -> HttpResponse:
        """Send a request and map error responses onto exceptions."""
        url = self._build_url(url, endpoint, params)
        headers = self._get_headers()

        logger.info(f"_make_request: {method} {url}")
        response = self.transport.execute(method, url, headers=headers, body=data)
        logger.info(f"_make_request: Response received - status={response.status}")

        path = endpoint or url
        if response.status >= 400:
            self._raise_for_status(response.body, response.status, path)

        errors = response.body.get("errors")
        if isinstance(errors, list) and errors:
            error_status = errors[0].get("status")
            try:
                error_status = int(error_status)
            except (TypeError, ValueError):
                error_status = response.status
            self._raise_for_status(response.body, error_status, path)

        return response

    @sleep_and_retry
    @limits(calls=3500, period=3600)  # Apple's rate limit
    def _make_request(self, *args, **kwargs) -> HttpResponse:
        """Rate-limited wrapper for _make_request_raw."""
        return self._make_request_raw(*args, **kwargs)

    def _raise_for_status(self, body: Dict[str, Any], status: int, path: str) -> None:
        detail = dig(body, "errors", 0, "detail") or dig(body, "errors", 0, "title")
        if not detail:
            detail = f"HTTP {status}"

        if status == 401:
            raise AuthenticationError(
                "Unauthorized - check your API key credentials", status=status
            )
        if status == 403:
            raise PermissionError(
                "Forbidden - your API key may not have the required permissions",
                status=status,
            )
        if status == 404:
            raise NotFoundError(f"Not found - resource doesn't exist: {path}", status=status)
        if status == 429:
            raise RateLimitError("Rate limited - too many requests", status=status)

        logger.error(f"API Error {status}: {detail}")
        if status >= 500:
            raise ServerError(f"API error ({status}): {detail}", status=status)
        raise ApiError(f"API error ({status}): {detail}", status=status)

    def get(self, endpoint: str, params: Optional[Dict] = None) -> Dict[str, Any]:
        return self._make_request(method="GET", endpoint=endpoint, params=params).body

    def post(self, endpoint: str, body: Optional[Dict] = None) -> Dict[str, Any]:
        return self._make_request(method="POST", endpoint=endpoint, data=body or {}).body

    def patch(self, endpoint: str, body: Optional[Dict] = None) -> Dict[str, Any]:
        return self._make_request(method="PATCH", endpoint=endpoint, data=body or {}).body

    def delete(self, endpoint: str) -> Dict[str, Any]:
        return self._make_request(method="DELETE", endpoint=endpoint).body

    def delete_with_body(self, endpoint: str, body: Optional[Dict] = None) -> Dict[str, Any]:
        return self._make_request(method="DELETE", endpoint=endpoint, data=body or {}).body

    def _get_document(
        self, endpoint: str, params: Optional[Dict] = None
    ) -> Optional[Dict[str, Any]]:
        """GET a document that may legitimately not exist yet.

        Returns None for a 404 response or an empty ``data`` member.
        """
        try:
            document = self.get(endpoint, params=params)
        except NotFoundError:
            logger.info(f"_get_document: {endpoint} not found")
            return None
        if not document.get("data"):
            return None
        return document

    def _get_optional(
        self, endpoint: str, params: Optional[Dict] = None
    ) -> Optional[Dict[str, Any]]:
        """Like ``_get_document`` but returns only the primary ``data``."""
        document = self._get_document(endpoint, params=params)
        return document["data"] if document else None

    def paginate(
        self, endpoint: str, params: Optional[Dict] = None, max_pages: Optional[int] = None
    ) -> Iterator[Dict[str, Any]]:
        """Yield resources across pages by following ``links.next``."""
        document = self.get(endpoint, params=params)
        pages = 1
        while True:
            for resource in document.get("data") or []:
                yield resource

            next_url = dig(document, "links", "next")
            if not next_url or (max_pages is not None and pages >= max_pages):
                return
            document = self._make_request(method="GET", url=next_url).body
            pages += 1

    def _create_resource(
        self,
        resource_type: str,
        attributes: Optional[Dict[str, Any]] = None,
        relationships: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """POST a new resource; relationship values are refs or lists of refs."""
        data: Dict[str, Any] = {"type": resource_type}
        if attributes is not None:
            data["attributes"] = attributes
        if relationships:
            data["relationships"] = {
                name: {"data": ref} for name, ref in relationships.items()
            }
        return self.post(f"/{resource_type}", body={"data": data})

    def _update_resource(
        self,
        resource_type: str,
        resource_id: str,
        attributes: Dict[str, Any],
        endpoint: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """PATCH the given attributes; nothing is sent when there are none."""
        if not attributes:
            return None
        return self.patch(
            endpoint or f"/{resource_type}/{resource_id}",
            body={
                "data": {
                    "type": resource_type,
                    "id": resource_id,
                    "attributes": attributes,
                }
            },
        )

    def _target_app(self, target_app_id: Optional[str]) -> str:
        app_id = target_app_id or self.app_id
        if not app_id:
            raise ConfigurationError(
                "No app selected: pass target_app_id or set APP_STORE_CONNECT_APP_ID"
            )
        return app_id

    # ===== ASSETS =====

    def upload_asset(
        self,
        resource_type: str,
        relationship: str,
        parent_type: str,
        parent_id: str,
        file_path: Union[str, Path],
    ) -> Dict[str, Any]:
        """Reserve, upload and commit ``file_path`` as a new asset."""
        return AssetUploader(self).upload(
            resource_type, relationship, parent_type, parent_id, str(file_path)
        )

    def asset_delivery_state(self, resource_type: str, asset_id: str) -> Dict[str, Any]:
        result = self.get(f"/{resource_type}/{asset_id}")
        return dig(result, "data", "attributes", "assetDeliveryState") or {}

    def wait_for_asset(
        self,
        resource_type: str,
        asset_id: str,
        interval: float = 2.0,
        timeout: float = 300.0,
    ) -> Dict[str, Any]:
        """Block until the asset finishes processing (see ``uploads.wait_for_asset``)."""
        return wait_for_asset(
            lambda: self.asset_delivery_state(resource_type, asset_id),
            interval=interval,
            timeout=timeout,
        )
