"""App info: names, subtitles, privacy URLs, categories and age ratings."""

from typing import Any, Dict, List, Optional

from ..exceptions import NotFoundError
from ..utils import compact, dig, find_included, flatten, validate_length

APP_INFO_FIELDS = {
    "state": "appStoreState",
    "app_store_age_rating": "appStoreAgeRating",
    "brazil_age_rating": "brazilAgeRating",
    "brazil_age_rating_v2": "brazilAgeRatingV2",
    "kids_age_band": "kidsAgeBand",
}

APP_INFO_LOCALIZATION_FIELDS = {
    "locale": "locale",
    "name": "name",
    "subtitle": "subtitle",
    "privacy_policy_url": "privacyPolicyUrl",
    "privacy_choices_url": "privacyChoicesUrl",
    "privacy_policy_text": "privacyPolicyText",
}

AGE_RATING_FIELDS = {
    "alcohol_tobacco_or_drug_use_or_references": "alcoholTobaccoOrDrugUseOrReferences",
    "gambling": "gambling",
    "gambling_simulated": "gamblingSimulated",
    "violence_cartoon_or_fantasy": "violenceCartoonOrFantasy",
    "violence_realistic": "violenceRealistic",
    "seventeen_plus": "seventeenPlus",
}

NAME_MAX_LENGTH = 30
SUBTITLE_MAX_LENGTH = 30


class AppInfoMixin:
    """App-level (not version-level) metadata."""

    def app_infos(self, target_app_id: Optional[str] = None) -> List[Dict[str, Any]]:
        app_id = self._target_app(target_app_id)
        return self.get(f"/apps/{app_id}/appInfos").get("data") or []

    def app_info(self, target_app_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return [flatten(info, APP_INFO_FIELDS) for info in self.app_infos(target_app_id)]

    def primary_app_info_id(self, target_app_id: Optional[str] = None) -> str:
        infos = self.app_infos(target_app_id)
        if not infos:
            raise NotFoundError(
                f"Could not fetch app info for app {self._target_app(target_app_id)}"
            )
        return infos[0]["id"]

    def app_info_localizations(self, app_info_id: str) -> List[Dict[str, Any]]:
        result = self.get(f"/appInfos/{app_info_id}/appInfoLocalizations")
        return [flatten(loc, APP_INFO_LOCALIZATION_FIELDS) for loc in result.get("data") or []]

    def update_app_info_localization(
        self,
        localization_id: str,
        name: Optional[str] = None,
        subtitle: Optional[str] = None,
        privacy_policy_url: Optional[str] = None,
        privacy_choices_url: Optional[str] = None,
        privacy_policy_text: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        validate_length("App name", name, NAME_MAX_LENGTH)
        validate_length("App subtitle", subtitle, SUBTITLE_MAX_LENGTH)
        attributes = compact(
            name=name,
            subtitle=subtitle,
            privacyPolicyUrl=privacy_policy_url,
            privacyChoicesUrl=privacy_choices_url,
            privacyPolicyText=privacy_policy_text,
        )
        return self._update_resource("appInfoLocalizations", localization_id, attributes)

    def update_app_info_for_locale(
        self, locale: str = "en-US", target_app_id: Optional[str] = None, **fields: Any
    ) -> Optional[Dict[str, Any]]:
        """Update name, subtitle or privacy fields of one locale's app info."""
        app_info_id = self.primary_app_info_id(target_app_id)
        for localization in self.app_info_localizations(app_info_id):
            if localization["locale"] == locale:
                return self.update_app_info_localization(localization["id"], **fields)
        raise NotFoundError(
            f"Localization {locale} not found for app {self._target_app(target_app_id)}"
        )

    def update_app_name(
        self, name: str, locale: str = "en-US", target_app_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        validate_length("App name", name, NAME_MAX_LENGTH)
        return self.update_app_info_for_locale(locale, target_app_id, name=name)

    def update_app_subtitle(
        self, subtitle: str, locale: str = "en-US", target_app_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        validate_length("App subtitle", subtitle, SUBTITLE_MAX_LENGTH)
        return self.update_app_info_for_locale(locale, target_app_id, subtitle=subtitle)

    def update_privacy_url(
        self, privacy_url: str, locale: str = "en-US", target_app_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        return self.update_app_info_for_locale(
            locale, target_app_id, privacy_policy_url=privacy_url
        )

    # ===== CATEGORIES & AGE RATING =====

    def app_categories(self, app_info_id: str) -> Dict[str, Dict[str, Any]]:
        """Primary and secondary category of an app info, where set."""
        result = self.get(
            f"/appInfos/{app_info_id}",
            params={"include": "primaryCategory,secondaryCategory"},
        )
        categories = {}
        for key, relationship in (
            ("primary", "primaryCategory"),
            ("secondary", "secondaryCategory"),
        ):
            category_id = dig(result, "data", "relationships", relationship, "data", "id")
            category = find_included(result, category_id)
            if category:
                categories[key] = {
                    "id": category_id,
                    "platforms": dig(category, "attributes", "platforms"),
                }
        return categories

    def available_categories(self, platform: str = "IOS") -> List[Dict[str, Any]]:
        result = self.get("/appCategories", params={"filter[platforms]": platform})
        return [flatten(cat, {"platforms": "platforms"}) for cat in result.get("data") or []]

    def age_rating_declaration(self, app_info_id: str) -> Optional[Dict[str, Any]]:
        declaration = self._get_optional(f"/appInfos/{app_info_id}/ageRatingDeclaration")
        return flatten(declaration, AGE_RATING_FIELDS)
