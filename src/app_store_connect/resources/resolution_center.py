"""Resolution Center (App Review rejection messages) over the IRIS API."""

import logging
from typing import Any, Dict, List, Optional

from ..exceptions import ApiError, AuthenticationError
from ..utils import flatten

logger = logging.getLogger(__name__)

SESSION_HINT = (
    "Resolution Center requires session authentication. "
    "Run 'fastlane spaceauth -u YOUR_APPLE_ID' and set FASTLANE_SESSION environment variable."
)


class ResolutionCenterMixin:
    """
    Rejection threads and messages.

    IRIS is the private API behind the App Store Connect web UI. It accepts
    web session cookies; the JWT is sent only as a fallback when no session
    is available, and most IRIS endpoints reject it.
    """

    def session_available(self) -> bool:
        return self.session is not None and self.session.valid()

    def _iris_get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self._build_url(f"{self.IRIS_URL}{path}", None, params)
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.session_available():
            headers["Cookie"] = self.session.cookie_header()
        else:
            headers["Authorization"] = f"Bearer {self._generate_token()}"

        logger.info(f"_iris_get: GET {url}")
        response = self.transport.execute("GET", url, headers=headers)

        if response.status in (401, 403) and not self.session_available():
            raise AuthenticationError(SESSION_HINT, status=response.status)
        if response.status >= 400:
            self._raise_for_status(response.body, response.status, path)
        return response.body

    def resolution_center_threads(self, submission_id: str) -> Dict[str, Any]:
        try:
            return self._iris_get(
                "/resolutionCenterThreads", params={"filter[reviewSubmission]": submission_id}
            )
        except AuthenticationError:
            raise
        except ApiError as e:
            raise ApiError(
                f"Resolution Center API error: {e}. Note: Detailed rejection messages "
                "may require App Store Connect web UI access.",
                status=e.status,
            ) from e

    def resolution_center_messages(self, thread_id: str) -> Dict[str, Any]:
        try:
            return self._iris_get(f"/resolutionCenterThreads/{thread_id}/resolutionCenterMessages")
        except AuthenticationError:
            raise
        except ApiError as e:
            raise ApiError(f"Resolution Center messages error: {e}", status=e.status) from e

    def rejection_reasons(self, thread_id: str) -> List[Dict[str, Any]]:
        result = self.resolution_center_messages(thread_id)
        return [
            flatten(message, {"body": "messageBody", "created_date": "createdDate"})
            for message in result.get("data") or []
        ]
