"""App Store screenshot sets and screenshots."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

from ..exceptions import AppStoreConnectError, ValidationError
from ..utils import flatten, resource_ref
from .subscriptions import ASSET_FIELDS

logger = logging.getLogger(__name__)

# Display types accepted by upload-screenshots, largest first
DISPLAY_TYPES = (
    "APP_IPHONE_67",
    "APP_IPHONE_65",
    "APP_IPHONE_55",
    "APP_IPAD_PRO_129",
    "APP_IPAD_PRO_11",
)

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg")


class ScreenshotsMixin:
    def app_screenshot_sets(self, localization_id: str) -> List[Dict[str, Any]]:
        result = self.get(f"/appStoreVersionLocalizations/{localization_id}/appScreenshotSets")
        return [
            flatten(s, {"screenshot_display_type": "screenshotDisplayType"})
            for s in result.get("data") or []
        ]

    def app_screenshots(self, screenshot_set_id: str) -> List[Dict[str, Any]]:
        result = self.get(f"/appScreenshotSets/{screenshot_set_id}/appScreenshots")
        return [flatten(shot, ASSET_FIELDS) for shot in result.get("data") or []]

    def create_app_screenshot_set(self, localization_id: str, display_type: str) -> Dict[str, Any]:
        return self._create_resource(
            "appScreenshotSets",
            {"screenshotDisplayType": display_type},
            {
                "appStoreVersionLocalization": resource_ref(
                    "appStoreVersionLocalizations", localization_id
                )
            },
        )

    def find_or_create_screenshot_set(self, localization_id: str, display_type: str) -> str:
        """ID of the localization's set for ``display_type``, created on demand."""
        for screenshot_set in self.app_screenshot_sets(localization_id):
            if screenshot_set["screenshot_display_type"] == display_type:
                return screenshot_set["id"]
        logger.info(f"Creating screenshot set for {display_type}")
        return self.create_app_screenshot_set(localization_id, display_type)["data"]["id"]

    def delete_app_screenshot_set(self, screenshot_set_id: str) -> Dict[str, Any]:
        return self.delete(f"/appScreenshotSets/{screenshot_set_id}")

    def upload_app_screenshot(
        self, screenshot_set_id: str, file_path: Union[str, Path]
    ) -> Dict[str, Any]:
        """
        Upload an image into a screenshot set.

        Args:
            screenshot_set_id: Target appScreenshotSets ID
            file_path: PNG or JPEG on disk

        Returns:
            The reservation document; ``data.id`` is the new screenshot
        """
        return self.upload_asset(
            "appScreenshots",
            "appScreenshotSet",
            "appScreenshotSets",
            screenshot_set_id,
            file_path,
        )

    def upload_screenshot_directory(
        self, localization_id: str, directory: Union[str, Path]
    ) -> Dict[str, Any]:
        """
        Upload ``<directory>/<DISPLAY_TYPE>/*.png|jpg`` into matching sets.

        Failures are collected per file so one bad image does not stop the rest.

        Returns:
            ``{"uploaded": [...], "errors": [...]}`` with ``TYPE/file`` entries

        Raises:
            ValidationError: If ``directory`` is not a directory
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise ValidationError(f"Screenshot directory not found: {directory}")
        uploaded: List[str] = []
        errors: List[str] = []

        for display_type in DISPLAY_TYPES:
            type_dir = directory / display_type
            if not type_dir.is_dir():
                continue

            set_id = self.find_or_create_screenshot_set(localization_id, display_type)
            images = sorted(
                p for p in type_dir.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES
            )
            for image in images:
                label = f"{display_type}/{image.name}"
                try:
                    self.upload_app_screenshot(set_id, image)
                except (AppStoreConnectError, OSError) as e:
                    logger.error(f"Upload of {label} failed: {e}")
                    errors.append(f"{label}: {e}")
                else:
                    uploaded.append(label)

        return {"uploaded": uploaded, "errors": errors}

    def delete_app_screenshot(self, screenshot_id: str) -> Dict[str, Any]:
        return self.delete(f"/appScreenshots/{screenshot_id}")

    def reorder_app_screenshots(
        self, screenshot_set_id: str, screenshot_ids: Sequence[str]
    ) -> Dict[str, Any]:
        return self.patch(
            f"/appScreenshotSets/{screenshot_set_id}/relationships/appScreenshots",
            body={"data": [resource_ref("appScreenshots", sid) for sid in screenshot_ids]},
        )

    def wait_for_screenshot(
        self, screenshot_id: str, interval: float = 2.0, timeout: float = 300.0
    ) -> Dict[str, Any]:
        return self.wait_for_asset("appScreenshots", screenshot_id, interval, timeout)
