"""In-app purchases (v2 API)."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..exceptions import NotFoundError
from ..utils import compact, flatten, resource_ref
from .subscriptions import ASSET_FIELDS

IAP_FIELDS = {
    "product_id": "productId",
    "name": "name",
    "state": "state",
    "type": "inAppPurchaseType",
    "review_note": "reviewNote",
}

IAP_LOCALIZATION_FIELDS = {
    "locale": "locale",
    "name": "name",
    "description": "description",
    "state": "state",
}


class InAppPurchasesMixin:
    def in_app_purchases(self, target_app_id: Optional[str] = None) -> List[Dict[str, Any]]:
        app_id = self._target_app(target_app_id)
        return [
            flatten(iap, IAP_FIELDS) for iap in self.paginate(f"/apps/{app_id}/inAppPurchasesV2")
        ]

    def in_app_purchase(self, iap_id: str) -> Dict[str, Any]:
        return flatten(self.get(f"/inAppPurchasesV2/{iap_id}")["data"], IAP_FIELDS)

    def find_in_app_purchase(
        self, product_id: str, target_app_id: Optional[str] = None
    ) -> Dict[str, Any]:
        for iap in self.in_app_purchases(target_app_id=target_app_id):
            if iap["product_id"] == product_id:
                return iap
        raise NotFoundError(f"In-App Purchase not found: {product_id}")

    def update_in_app_purchase(
        self, iap_id: str, name: Optional[str] = None, review_note: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        return self._update_resource(
            "inAppPurchases",
            iap_id,
            compact(name=name, reviewNote=review_note),
            endpoint=f"/inAppPurchasesV2/{iap_id}",
        )

    def submit_in_app_purchase(self, iap_id: str) -> Dict[str, Any]:
        return self._create_resource(
            "inAppPurchaseSubmissions",
            relationships={"inAppPurchaseV2": resource_ref("inAppPurchases", iap_id)},
        )

    # ===== LOCALIZATIONS =====

    def in_app_purchase_localizations(self, iap_id: str) -> List[Dict[str, Any]]:
        result = self.get(f"/inAppPurchasesV2/{iap_id}/inAppPurchaseLocalizations")
        return [flatten(loc, IAP_LOCALIZATION_FIELDS) for loc in result.get("data") or []]

    def create_in_app_purchase_localization(
        self, iap_id: str, locale: str, name: str, description: Optional[str] = None
    ) -> Dict[str, Any]:
        return self._create_resource(
            "inAppPurchaseLocalizations",
            compact(locale=locale, name=name, description=description),
            {"inAppPurchaseV2": resource_ref("inAppPurchases", iap_id)},
        )

    def update_in_app_purchase_localization(
        self,
        localization_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        return self._update_resource(
            "inAppPurchaseLocalizations",
            localization_id,
            compact(name=name, description=description),
        )

    def delete_in_app_purchase_localization(self, localization_id: str) -> Dict[str, Any]:
        return self.delete(f"/inAppPurchaseLocalizations/{localization_id}")

    # ===== REVIEW SCREENSHOT =====

    def iap_review_screenshot(self, iap_id: str) -> Optional[Dict[str, Any]]:
        """The App Review screenshot of an IAP, or None if none was uploaded."""
        screenshot = self._get_optional(f"/inAppPurchasesV2/{iap_id}/appStoreReviewScreenshot")
        return flatten(screenshot, ASSET_FIELDS)

    def upload_iap_review_screenshot(
        self, iap_id: str, file_path: Union[str, Path]
    ) -> Dict[str, Any]:
        return self.upload_asset(
            "inAppPurchaseAppStoreReviewScreenshots",
            "inAppPurchaseV2",
            "inAppPurchases",
            iap_id,
            file_path,
        )

    def delete_iap_review_screenshot(self, screenshot_id: str) -> Dict[str, Any]:
        return self.delete(f"/inAppPurchaseAppStoreReviewScreenshots/{screenshot_id}")
