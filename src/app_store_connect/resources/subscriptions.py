"""Auto-renewable subscriptions, their localizations and images."""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..exceptions import NotFoundError, ValidationError
from ..utils import compact, dig, first_successful, flatten, included_of_type, resource_ref

logger = logging.getLogger(__name__)

SUBSCRIPTION_FIELDS = {
    "product_id": "productId",
    "name": "name",
    "state": "state",
    "group_level": "groupLevel",
    "subscription_period": "subscriptionPeriod",
    "review_note": "reviewNote",
}

SUBSCRIPTION_LOCALIZATION_FIELDS = {
    "locale": "locale",
    "name": "name",
    "description": "description",
    "state": "state",
}

INTRO_OFFER_FIELDS = {
    "offer_mode": "offerMode",
    "duration": "duration",
    "number_of_periods": "numberOfPeriods",
    "start_date": "startDate",
    "end_date": "endDate",
}

INTRO_OFFER_MODES = ("FREE_TRIAL", "PAY_AS_YOU_GO", "PAY_UP_FRONT")

SUBSCRIPTION_PERIODS = (
    "ONE_WEEK",
    "ONE_MONTH",
    "TWO_MONTHS",
    "THREE_MONTHS",
    "SIX_MONTHS",
    "ONE_YEAR",
)

PERIOD_SHORTHANDS = {
    "1w": "ONE_WEEK",
    "week": "ONE_WEEK",
    "1m": "ONE_MONTH",
    "month": "ONE_MONTH",
    "2m": "TWO_MONTHS",
    "3m": "THREE_MONTHS",
    "6m": "SIX_MONTHS",
    "1y": "ONE_YEAR",
    "year": "ONE_YEAR",
}


def normalize_subscription_period(value: Optional[str]) -> Optional[str]:
    """Map ``one-month``, ``1m``, ``1 year`` and friends onto a period constant."""
    if value is None:
        return None
    upper = re.sub(r"[\s-]+", "_", value.strip().upper())
    if upper in SUBSCRIPTION_PERIODS:
        return upper
    condensed = re.sub(r"[^a-z0-9]", "", value.lower())
    condensed = re.sub(r"^(\d)(week|month|year)s?$", lambda m: m.group(1) + m.group(2)[0], condensed)
    return PERIOD_SHORTHANDS.get(condensed)


ASSET_FIELDS = {
    "file_name": "fileName",
    "file_size": "fileSize",
    "upload_state": "assetDeliveryState.state",
    "source_file_checksum": "sourceFileChecksum",
}


class SubscriptionsMixin:
    """Subscription groups and products."""

    def subscription_groups(self, target_app_id: Optional[str] = None) -> List[Dict[str, Any]]:
        app_id = self._target_app(target_app_id)
        result = self.get(f"/apps/{app_id}/subscriptionGroups")
        return [
            flatten(group, {"reference_name": "referenceName"})
            for group in result.get("data") or []
        ]

    def subscriptions(self, target_app_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Every subscription across all of the app's groups."""
        subscriptions = []
        for group in self.subscription_groups(target_app_id=target_app_id):
            for sub in self.paginate(f"/subscriptionGroups/{group['id']}/subscriptions"):
                flat = flatten(sub, SUBSCRIPTION_FIELDS)
                flat["group_id"] = group["id"]
                subscriptions.append(flat)
        return subscriptions

    def subscription(self, subscription_id: str) -> Dict[str, Any]:
        return flatten(self.get(f"/subscriptions/{subscription_id}")["data"], SUBSCRIPTION_FIELDS)

    def find_subscription(
        self, product_id: str, target_app_id: Optional[str] = None
    ) -> Dict[str, Any]:
        for sub in self.subscriptions(target_app_id=target_app_id):
            if sub["product_id"] == product_id:
                return sub
        raise NotFoundError(f"Subscription not found: {product_id}")

    def create_subscription_group(
        self, reference_name: str, target_app_id: Optional[str] = None
    ) -> Dict[str, Any]:
        app_id = self._target_app(target_app_id)
        result = self._create_resource(
            "subscriptionGroups",
            {"referenceName": reference_name},
            {"app": resource_ref("apps", app_id)},
        )
        return flatten(result["data"], {"reference_name": "referenceName"})

    def create_subscription(
        self,
        subscription_group_id: str,
        name: str,
        product_id: str,
        subscription_period: str,
        family_sharable: bool = False,
        review_note: Optional[str] = None,
        group_level: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Create an auto-renewable subscription inside a group.

        Args:
            subscription_group_id: Group the product belongs to
            name: Reference name shown in App Store Connect
            product_id: Store product identifier
            subscription_period: One of ``SUBSCRIPTION_PERIODS``

        Returns:
            The new subscription, flattened
        """
        if subscription_period not in SUBSCRIPTION_PERIODS:
            raise ValidationError(
                f"Invalid subscription period: {subscription_period}. "
                f"Expected one of {', '.join(SUBSCRIPTION_PERIODS)}"
            )
        attributes = compact(
            name=name,
            productId=product_id,
            subscriptionPeriod=subscription_period,
            familySharable=family_sharable,
            reviewNote=review_note,
            groupLevel=group_level,
        )
        result = self._create_resource(
            "subscriptions",
            attributes,
            {"group": resource_ref("subscriptionGroups", subscription_group_id)},
        )
        logger.info(f"Created subscription {product_id} ({result['data']['id']})")
        return flatten(result["data"], SUBSCRIPTION_FIELDS)

    def delete_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """Only subscriptions never submitted for review can be deleted."""
        return self.delete(f"/subscriptions/{subscription_id}")

    def update_subscription(
        self,
        subscription_id: str,
        name: Optional[str] = None,
        group_level: Optional[int] = None,
        review_note: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        attributes = compact(name=name, groupLevel=group_level, reviewNote=review_note)
        return self._update_resource("subscriptions", subscription_id, attributes)

    def subscription_localizations(self, subscription_id: str) -> List[Dict[str, Any]]:
        result = self.get(f"/subscriptions/{subscription_id}/subscriptionLocalizations")
        return [
            flatten(loc, SUBSCRIPTION_LOCALIZATION_FIELDS) for loc in result.get("data") or []
        ]

    def update_subscription_localization(
        self,
        localization_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        attributes = compact(name=name, description=description)
        return self._update_resource("subscriptionLocalizations", localization_id, attributes)

    def create_subscription_localization(
        self,
        subscription_id: str,
        locale: str,
        name: str,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self._create_resource(
            "subscriptionLocalizations",
            compact(locale=locale, name=name, description=description),
            {"subscription": resource_ref("subscriptions", subscription_id)},
        )

    # ===== PRICES & INTRODUCTORY OFFERS =====

    def create_subscription_price(
        self,
        subscription_id: str,
        subscription_price_point_id: str,
        start_date: Optional[str] = None,
        preserve_current_price: bool = False,
    ) -> Dict[str, Any]:
        """Schedule a price; the price point fixes the territory."""
        return self._create_resource(
            "subscriptionPrices",
            compact(startDate=start_date, preserveCurrentPrice=preserve_current_price),
            {
                "subscription": resource_ref("subscriptions", subscription_id),
                "subscriptionPricePoint": resource_ref(
                    "subscriptionPricePoints", subscription_price_point_id
                ),
            },
        )

    def subscription_introductory_offers(self, subscription_id: str) -> List[Dict[str, Any]]:
        result = self.get(
            f"/subscriptions/{subscription_id}/introductoryOffers",
            params={"include": "territory"},
        )
        offers = []
        for offer in result.get("data") or []:
            flat = flatten(offer, INTRO_OFFER_FIELDS)
            flat["territory"] = dig(offer, "relationships", "territory", "data", "id")
            offers.append(flat)
        return offers

    def create_subscription_introductory_offer(
        self,
        subscription_id: str,
        offer_mode: str,
        duration: str,
        number_of_periods: int = 1,
        subscription_price_point_id: Optional[str] = None,
        territory: Optional[str] = None,
        start_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        if offer_mode not in INTRO_OFFER_MODES:
            raise ValidationError(
                f"Invalid offer mode: {offer_mode}. Expected one of {', '.join(INTRO_OFFER_MODES)}"
            )
        if offer_mode != "FREE_TRIAL" and not subscription_price_point_id:
            raise ValidationError(f"{offer_mode} offers need a price point")

        relationships = {"subscription": resource_ref("subscriptions", subscription_id)}
        if subscription_price_point_id:
            relationships["subscriptionPricePoint"] = resource_ref(
                "subscriptionPricePoints", subscription_price_point_id
            )
        if territory:
            relationships["territory"] = resource_ref("territories", territory)

        result = self._create_resource(
            "subscriptionIntroductoryOffers",
            compact(
                offerMode=offer_mode,
                duration=duration,
                numberOfPeriods=number_of_periods,
                startDate=start_date,
            ),
            relationships,
        )
        return flatten(result["data"], INTRO_OFFER_FIELDS)

    def delete_subscription_introductory_offer(self, offer_id: str) -> Dict[str, Any]:
        return self.delete(f"/subscriptionIntroductoryOffers/{offer_id}")

    # ===== AVAILABILITY =====

    def subscription_availability(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        """Territories the subscription is sold in, or None before it is first set."""
        document = self._get_document(
            f"/subscriptions/{subscription_id}/subscriptionAvailability",
            params={"include": "availableTerritories"},
        )
        if document is None:
            return None

        availability = document["data"]
        return {
            "id": availability.get("id"),
            "available_in_new_territories": dig(
                availability, "attributes", "availableInNewTerritories"
            ),
            "territories": [
                territory["id"] for territory in included_of_type(document, "territories")
            ],
        }

    def set_subscription_availability(
        self,
        subscription_id: str,
        territory_ids: List[str],
        available_in_new_territories: bool = False,
    ) -> Dict[str, Any]:
        """Replace the subscription's territory list."""
        if not territory_ids:
            raise ValidationError("At least one territory is required")
        return self._create_resource(
            "subscriptionAvailabilities",
            {"availableInNewTerritories": available_in_new_territories},
            {
                "subscription": resource_ref("subscriptions", subscription_id),
                "availableTerritories": [
                    resource_ref("territories", territory) for territory in territory_ids
                ],
            },
        )

    # ===== IMAGES =====

    def subscription_images(self, subscription_id: str) -> List[Dict[str, Any]]:
        """
        Promotional images of a subscription.

        Apple has served this relationship under two names; both are tried
        in order and the last failure is raised if neither exists.
        """
        documents = first_successful(
            [
                lambda: self.get(f"/subscriptions/{subscription_id}/images"),
                lambda: self.get(f"/subscriptions/{subscription_id}/subscriptionImages"),
            ],
            errors=(NotFoundError,),
        )
        return [flatten(image, ASSET_FIELDS) for image in documents.get("data") or []]

    def upload_subscription_image(
        self, subscription_id: str, file_path: Union[str, Path]
    ) -> Dict[str, Any]:
        return self.upload_asset(
            "subscriptionImages", "subscription", "subscriptions", subscription_id, file_path
        )

    def delete_subscription_image(self, image_id: str) -> Dict[str, Any]:
        return self.delete(f"/subscriptionImages/{image_id}")

    # ===== REVIEW SCREENSHOT =====

    def subscription_review_screenshot(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        screenshot = self._get_optional(
            f"/subscriptions/{subscription_id}/appStoreReviewScreenshot"
        )
        return flatten(screenshot, ASSET_FIELDS)

    def upload_subscription_review_screenshot(
        self, subscription_id: str, file_path: Union[str, Path]
    ) -> Dict[str, Any]:
        return self.upload_asset(
            "subscriptionAppStoreReviewScreenshots",
            "subscription",
            "subscriptions",
            subscription_id,
            file_path,
        )

    def delete_subscription_review_screenshot(self, screenshot_id: str) -> Dict[str, Any]:
        return self.delete(f"/subscriptionAppStoreReviewScreenshots/{screenshot_id}")
