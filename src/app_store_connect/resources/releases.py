"""Version creation, release control, phased releases and pre-orders."""

import logging
from typing import Any, Dict, Optional

from ..exceptions import ApiError, ValidationError
from ..utils import compact, dig, flatten, resource_ref, validate_version_string

logger = logging.getLogger(__name__)

PLATFORMS = ("IOS", "MAC_OS", "TV_OS", "VISION_OS")
RELEASE_TYPES = ("MANUAL", "AFTER_APPROVAL", "SCHEDULED")
PHASED_RELEASE_STATES = ("INACTIVE", "ACTIVE", "PAUSED", "COMPLETE")

VERSION_FIELDS = {
    "version_string": "versionString",
    "state": "appStoreState",
    "release_type": "releaseType",
    "created_date": "createdDate",
}

PHASED_RELEASE_FIELDS = {
    "state": "phasedReleaseState",
    "start_date": "startDate",
    "total_pause_duration": "totalPauseDuration",
    "current_day_number": "currentDayNumber",
}


class ReleasesMixin:
    """Release automation."""

    def create_app_store_version(
        self,
        version_string: str,
        platform: str = "IOS",
        release_type: str = "AFTER_APPROVAL",
        earliest_release_date: Optional[str] = None,
        target_app_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a new App Store version.

        Args:
            version_string: e.g. ``2.1.0``
            platform: IOS, MAC_OS, TV_OS or VISION_OS
            release_type: MANUAL, AFTER_APPROVAL or SCHEDULED
            earliest_release_date: ISO 8601 date, only used for SCHEDULED
            target_app_id: App to add the version to

        Returns:
            The new version (id, version_string, state, release_type, created_date)
        """
        validate_version_string(version_string)
        if platform not in PLATFORMS:
            raise ValidationError(f"Invalid platform: {platform}")
        if release_type not in RELEASE_TYPES:
            raise ValidationError(f"Invalid release type: {release_type}")

        attributes = {
            "versionString": version_string,
            "platform": platform,
            "releaseType": release_type,
        }
        if earliest_release_date and release_type == "SCHEDULED":
            attributes["earliestReleaseDate"] = earliest_release_date

        app_id = self._target_app(target_app_id)
        result = self._create_resource(
            "appStoreVersions", attributes, {"app": resource_ref("apps", app_id)}
        )
        return flatten(result["data"], VERSION_FIELDS)

    def update_app_store_version(
        self,
        version_id: str,
        release_type: Optional[str] = None,
        earliest_release_date: Optional[str] = None,
        version_string: Optional[str] = None,
        downloadable: Optional[bool] = None,
    ) -> Optional[Dict[str, Any]]:
        attributes = compact(
            releaseType=release_type,
            earliestReleaseDate=earliest_release_date,
            versionString=version_string,
            downloadable=downloadable,
        )
        return self._update_resource("appStoreVersions", version_id, attributes)

    def release_version(
        self, version_id: str, target_app_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Release a version that is waiting in PENDING_DEVELOPER_RELEASE."""
        versions = self.app_store_versions(target_app_id=target_app_id)
        version = next((v for v in versions if v.get("id") == version_id), None)
        if version is None:
            raise ApiError(f"Version not found: {version_id}")

        state = dig(version, "attributes", "appStoreState")
        if state != "PENDING_DEVELOPER_RELEASE":
            raise ApiError(
                f"Version must be PENDING_DEVELOPER_RELEASE to release (current: {state})"
            )

        return self._update_resource(
            "appStoreVersions", version_id, {"releaseType": "AFTER_APPROVAL"}
        )

    # ===== PHASED RELEASE =====

    def phased_release(self, version_id: str) -> Optional[Dict[str, Any]]:
        release = self._get_optional(
            f"/appStoreVersions/{version_id}/appStoreVersionPhasedRelease"
        )
        return flatten(release, PHASED_RELEASE_FIELDS)

    def active_phased_release(
        self, target_app_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Phased release of the version currently on sale, if any."""
        version = self.find_version("READY_FOR_SALE", target_app_id=target_app_id)
        if version is None:
            return None
        return self.phased_release(version["id"])

    def create_phased_release(self, version_id: str) -> Dict[str, Any]:
        """Enable the 7-day gradual rollout for a version."""
        result = self._create_resource(
            "appStoreVersionPhasedReleases",
            {"phasedReleaseState": "INACTIVE"},
            {"appStoreVersion": resource_ref("appStoreVersions", version_id)},
        )
        return {
            "id": result["data"]["id"],
            "state": dig(result, "data", "attributes", "phasedReleaseState"),
        }

    def update_phased_release(self, phased_release_id: str, state: str) -> Optional[Dict[str, Any]]:
        if state not in PHASED_RELEASE_STATES:
            raise ValidationError(f"Invalid phased release state: {state}")
        logger.info(f"Setting phased release {phased_release_id} to {state}")
        return self._update_resource(
            "appStoreVersionPhasedReleases", phased_release_id, {"phasedReleaseState": state}
        )

    def delete_phased_release(self, phased_release_id: str) -> Dict[str, Any]:
        return self.delete(f"/appStoreVersionPhasedReleases/{phased_release_id}")

    # ===== PRE-ORDERS =====

    def pre_order(self, target_app_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        app_id = self._target_app(target_app_id)
        order = self._get_optional(f"/apps/{app_id}/preOrder")
        return flatten(
            order,
            {
                "pre_order_available_date": "preOrderAvailableDate",
                "app_release_date": "appReleaseDate",
            },
        )

    def create_pre_order(
        self, app_release_date: str, target_app_id: Optional[str] = None
    ) -> Dict[str, Any]:
        app_id = self._target_app(target_app_id)
        result = self._create_resource(
            "appPreOrders",
            {"appReleaseDate": app_release_date},
            {"app": resource_ref("apps", app_id)},
        )
        return flatten(result["data"], {"app_release_date": "appReleaseDate"})

    def update_pre_order(self, pre_order_id: str, app_release_date: str) -> Optional[Dict[str, Any]]:
        return self._update_resource(
            "appPreOrders", pre_order_id, {"appReleaseDate": app_release_date}
        )

    def delete_pre_order(self, pre_order_id: str) -> Dict[str, Any]:
        return self.delete(f"/appPreOrders/{pre_order_id}")
