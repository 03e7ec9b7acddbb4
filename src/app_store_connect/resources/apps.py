"""Apps, builds, review submissions and status summaries."""

import logging
from typing import Any, Dict, List, Optional

from ..utils import dig, flatten, relationship_ids

logger = logging.getLogger(__name__)

APP_FIELDS = {"name": "name", "bundle_id": "bundleId", "sku": "sku"}

BUILD_FIELDS = {
    "version": "version",
    "uploaded": "uploadedDate",
    "processing_state": "processingState",
    "build_audience_type": "buildAudienceType",
}

REJECTED_STATES = ("REJECTED", "METADATA_REJECTED", "INVALID_BINARY")
UNRESOLVED_ISSUES = "UNRESOLVED_ISSUES"


class AppsMixin:
    """App listing and the status/readiness summaries built on it."""

    def apps(self) -> List[Dict[str, Any]]:
        """List every app visible to the API key."""
        return [flatten(app, APP_FIELDS) for app in self.paginate("/apps")]

    def app(self, target_app_id: Optional[str] = None) -> Dict[str, Any]:
        app_id = self._target_app(target_app_id)
        return flatten(self.get(f"/apps/{app_id}")["data"], APP_FIELDS)

    def app_store_versions(self, target_app_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Raw appStoreVersions resources, newest first as returned by Apple."""
        app_id = self._target_app(target_app_id)
        return self.get(f"/apps/{app_id}/appStoreVersions").get("data") or []

    def find_version(
        self, *states: str, target_app_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """First version whose appStoreState matches, trying ``states`` in order."""
        versions = self.app_store_versions(target_app_id=target_app_id)
        for state in states:
            for version in versions:
                if dig(version, "attributes", "appStoreState") == state:
                    return version
        return None

    def review_submissions(
        self, target_app_id: Optional[str] = None, limit: int = 10
    ) -> List[Dict[str, Any]]:
        app_id = self._target_app(target_app_id)
        result = self.get(f"/apps/{app_id}/reviewSubmissions", params={"limit": limit})
        return result.get("data") or []

    def review_submission_items(self, submission_id: str) -> List[Dict[str, Any]]:
        result = self.get(f"/reviewSubmissions/{submission_id}/items")
        items = []
        for item in result.get("data") or []:
            items.append(
                {
                    "id": item.get("id"),
                    "state": dig(item, "attributes", "state"),
                    "version_ids": relationship_ids(item, "appStoreVersion"),
                }
            )
        return items

    def builds(self, target_app_id: Optional[str] = None, limit: int = 10) -> List[Dict[str, Any]]:
        app_id = self._target_app(target_app_id)
        result = self.get(f"/apps/{app_id}/builds", params={"limit": limit})
        return [flatten(build, BUILD_FIELDS) for build in result.get("data") or []]

    def app_status(self, target_app_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Summarize an app: identity, versions, latest review and subscriptions.

        Args:
            target_app_id: App to summarize (defaults to the configured app)

        Returns:
            Dict with ``app``, ``versions``, ``latest_review`` and ``subscriptions``
        """
        app_id = self._target_app(target_app_id)
        app = self.app(app_id)
        versions = self.app_store_versions(target_app_id=app_id)
        reviews = self.review_submissions(target_app_id=app_id)
        subscriptions = self.subscriptions(target_app_id=app_id)

        latest_review = None
        if reviews:
            latest_review = {
                "state": dig(reviews[0], "attributes", "state"),
                "platform": dig(reviews[0], "attributes", "platform"),
                "submitted": dig(reviews[0], "attributes", "submittedDate"),
            }

        return {
            "app": app,
            "versions": [
                {
                    "id": version.get("id"),
                    "version": dig(version, "attributes", "versionString"),
                    "state": dig(version, "attributes", "appStoreState"),
                    "release_type": dig(version, "attributes", "releaseType"),
                    "created": dig(version, "attributes", "createdDate"),
                }
                for version in versions
            ],
            "latest_review": latest_review,
            "subscriptions": [
                {key: sub.get(key) for key in ("id", "product_id", "name", "state", "group_level")}
                for sub in subscriptions
            ],
        }

    def submission_readiness(self, target_app_id: Optional[str] = None) -> Dict[str, Any]:
        """Check whether the app can be submitted and list blocking issues."""
        status = self.app_status(target_app_id=target_app_id)
        versions = status["versions"]
        issues = []

        def first_in(state):
            return next((v for v in versions if v["state"] == state), None)

        rejected = first_in("REJECTED")
        if rejected:
            issues.append(
                f"Version {rejected['version']} was REJECTED - "
                "check App Store Connect for details"
            )

        missing = [s["product_id"] for s in status["subscriptions"] if s["state"] == "MISSING_METADATA"]
        if missing:
            issues.append(f"Subscriptions missing metadata: {', '.join(missing)}")

        sub_rejected = [s["product_id"] for s in status["subscriptions"] if s["state"] == "REJECTED"]
        if sub_rejected:
            issues.append(f"Subscriptions rejected: {', '.join(sub_rejected)}")

        if first_in("WAITING_FOR_REVIEW"):
            current_state = "WAITING_FOR_REVIEW"
        elif first_in("PREPARE_FOR_SUBMISSION"):
            current_state = "PREPARE_FOR_SUBMISSION"
        else:
            current_state = "UNKNOWN"

        return {
            "ready": not issues,
            "current_state": current_state,
            "issues": issues,
            "status": status,
        }

    def rejection_info(self, target_app_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Locate the most recent rejected version or unresolved submission."""
        app_id = self._target_app(target_app_id)
        version = self.find_version(*REJECTED_STATES, target_app_id=app_id)

        submission = next(
            (
                s
                for s in self.review_submissions(target_app_id=app_id)
                if dig(s, "attributes", "state") == UNRESOLVED_ISSUES
            ),
            None,
        )

        if version is None and submission is None:
            return None

        info = {
            "version_id": None,
            "version_string": None,
            "state": None,
            "submission_id": None,
            "submission_state": None,
        }
        if version is not None:
            info.update(
                version_id=version.get("id"),
                version_string=dig(version, "attributes", "versionString"),
                state=dig(version, "attributes", "appStoreState"),
            )
        if submission is not None:
            info.update(
                submission_id=submission.get("id"),
                submission_state=dig(submission, "attributes", "state"),
            )
        logger.info(f"rejection_info: {info}")
        return info
