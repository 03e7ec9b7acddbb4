"""Pricing, price points, availability and territories."""

from typing import Any, Dict, List, Optional

from ..utils import dig, find_included, flatten, included_of_type, relationship_ids

TERRITORY_FIELDS = {"currency": "currency"}


class PricingMixin:
    def subscription_price_points(
        self, subscription_id: str, territory: str = "USA"
    ) -> List[Dict[str, Any]]:
        result = self.get(
            f"/subscriptions/{subscription_id}/pricePoints",
            params={"filter[territory]": territory, "include": "territory"},
        )
        return [
            flatten(
                point,
                {"customer_price": "customerPrice", "proceeds": "proceeds", "proceeds_year2": "proceedsYear2"},
            )
            for point in result.get("data") or []
        ]

    def subscription_prices(self, subscription_id: str) -> List[Dict[str, Any]]:
        result = self.get(
            f"/subscriptions/{subscription_id}/prices",
            params={"include": "subscriptionPricePoint"},
        )
        prices = []
        for price in result.get("data") or []:
            flat = flatten(price, {"start_date": "startDate", "preserved": "preserved"})
            flat["price_point_id"] = dig(
                price, "relationships", "subscriptionPricePoint", "data", "id"
            )
            point = find_included(result, flat["price_point_id"], "subscriptionPricePoints")
            flat["customer_price"] = dig(point, "attributes", "customerPrice")
            prices.append(flat)
        return prices

    def app_price_schedule(self, target_app_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Base territory currency and manual price entries, or None if unpriced."""
        app_id = self._target_app(target_app_id)
        document = self._get_document(
            f"/apps/{app_id}/appPriceSchedule",
            params={"include": "manualPrices,automaticPrices,baseTerritory"},
        )
        if document is None:
            return None

        schedule = document["data"]
        base_territory_ids = relationship_ids(schedule, "baseTerritory")
        base_territory = find_included(
            document, base_territory_ids[0] if base_territory_ids else None, "territories"
        )
        manual_ids = set(relationship_ids(schedule, "manualPrices"))

        return {
            "id": schedule.get("id"),
            "base_territory": dig(base_territory, "attributes", "currency"),
            "manual_prices": [
                flatten(price, {"start_date": "startDate", "end_date": "endDate"})
                for price in included_of_type(document, "appPrices")
                if price.get("id") in manual_ids
            ],
        }

    def app_price_points(
        self, target_app_id: Optional[str] = None, territory: str = "USA", limit: int = 50
    ) -> List[Dict[str, Any]]:
        app_id = self._target_app(target_app_id)
        result = self.get(
            f"/apps/{app_id}/appPricePoints",
            params={"filter[territory]": territory, "limit": limit},
        )
        return [
            flatten(point, {"customer_price": "customerPrice", "proceeds": "proceeds"})
            for point in result.get("data") or []
        ]

    def app_availability(self, target_app_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        app_id = self._target_app(target_app_id)
        document = self._get_document(
            f"/apps/{app_id}/appAvailability", params={"include": "availableTerritories"}
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
                flatten(territory, TERRITORY_FIELDS)
                for territory in included_of_type(document, "territories")
            ],
        }

    def update_app_availability(
        self, availability_id: str, available_in_new_territories: bool
    ) -> Optional[Dict[str, Any]]:
        return self._update_resource(
            "appAvailabilities",
            availability_id,
            {"availableInNewTerritories": available_in_new_territories},
        )

    def territories(self, limit: int = 200) -> List[Dict[str, Any]]:
        result = self.get("/territories", params={"limit": limit})
        return [flatten(territory, TERRITORY_FIELDS) for territory in result.get("data") or []]
