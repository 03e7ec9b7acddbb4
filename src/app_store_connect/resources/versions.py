"""App Store versions: localizations, review details, submissions, content rights."""

import logging
from typing import Any, Dict, List, Optional

from ..exceptions import NotFoundError, ValidationError
from ..utils import compact, dig, flatten, resource_ref, validate_length

logger = logging.getLogger(__name__)

EDITABLE_STATES = (
    "PREPARE_FOR_SUBMISSION",
    "WAITING_FOR_REVIEW",
    "IN_REVIEW",
    "DEVELOPER_REJECTED",
    "REJECTED",
    "METADATA_REJECTED",
)

VERSION_LOCALIZATION_FIELDS = {
    "locale": "locale",
    "description": "description",
    "keywords": "keywords",
    "whats_new": "whatsNew",
    "promotional_text": "promotionalText",
    "marketing_url": "marketingUrl",
    "support_url": "supportUrl",
}

REVIEW_DETAIL_FIELDS = {
    "contact_first_name": "contactFirstName",
    "contact_last_name": "contactLastName",
    "contact_phone": "contactPhone",
    "contact_email": "contactEmail",
    "demo_account_name": "demoAccountName",
    "demo_account_password": "demoAccountPassword",
    "demo_account_required": "demoAccountRequired",
    "notes": "notes",
}

# Attribute name, character limit, label used in validation errors
LOCALIZED_TEXT_LIMITS = {
    "description": ("description", 4000, "Description"),
    "keywords": ("keywords", 100, "Keywords"),
    "whats_new": ("whatsNew", 4000, "What's New"),
    "promotional_text": ("promotionalText", 170, "Promotional text"),
}


def review_detail_attributes(
    contact_first_name=None,
    contact_last_name=None,
    contact_phone=None,
    contact_email=None,
    demo_account_name=None,
    demo_account_password=None,
    demo_account_required=None,
    notes=None,
) -> Dict[str, Any]:
    return compact(
        contactFirstName=contact_first_name,
        contactLastName=contact_last_name,
        contactPhone=contact_phone,
        contactEmail=contact_email,
        demoAccountName=demo_account_name,
        demoAccountPassword=demo_account_password,
        demoAccountRequired=demo_account_required,
        notes=notes,
    )


class VersionsMixin:
    """Version-level metadata and App Review plumbing."""

    def editable_version(self, target_app_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """The first version that still accepts metadata edits."""
        for version in self.app_store_versions(target_app_id=target_app_id):
            if dig(version, "attributes", "appStoreState") in EDITABLE_STATES:
                return version
        return None

    # ===== LOCALIZATIONS =====

    def app_store_version_localizations(self, version_id: str) -> List[Dict[str, Any]]:
        result = self.get(f"/appStoreVersions/{version_id}/appStoreVersionLocalizations")
        return [flatten(loc, VERSION_LOCALIZATION_FIELDS) for loc in result.get("data") or []]

    def app_store_version_localization(
        self, version_id: str, locale: str
    ) -> Dict[str, Any]:
        for localization in self.app_store_version_localizations(version_id):
            if localization["locale"] == locale:
                return localization
        raise NotFoundError(f"Version localization {locale} not found for version {version_id}")

    def create_app_store_version_localization(
        self, version_id: str, locale: str, **fields: Optional[str]
    ) -> Dict[str, Any]:
        attributes = {"locale": locale}
        attributes.update(self._localized_attributes(fields))
        result = self._create_resource(
            "appStoreVersionLocalizations",
            attributes,
            {"appStoreVersion": resource_ref("appStoreVersions", version_id)},
        )
        return flatten(result["data"], VERSION_LOCALIZATION_FIELDS)

    def update_app_store_version_localization(
        self,
        localization_id: str,
        description: Optional[str] = None,
        whats_new: Optional[str] = None,
        keywords: Optional[str] = None,
        promotional_text: Optional[str] = None,
        marketing_url: Optional[str] = None,
        support_url: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Update description, what's new, keywords, promotional text or URLs.

        Only the fields passed are sent; returns None when nothing was given.

        Raises:
            ValidationError: If a text field exceeds Apple's length limit
        """
        attributes = self._localized_attributes(
            {
                "description": description,
                "whats_new": whats_new,
                "keywords": keywords,
                "promotional_text": promotional_text,
            }
        )
        attributes.update(compact(marketingUrl=marketing_url, supportUrl=support_url))
        return self._update_resource("appStoreVersionLocalizations", localization_id, attributes)

    def update_localized_text(
        self,
        field: str,
        value: str,
        locale: str = "en-US",
        target_app_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Set one text field on the editable version's localization for ``locale``.

        Args:
            field: One of description, keywords, whats_new, promotional_text
            value: New text
            locale: Localization to change
            target_app_id: App to change (defaults to the configured app)

        Raises:
            ValidationError: Unknown field, text too long, or no editable version
            NotFoundError: The locale has no localization on that version
        """
        if field not in LOCALIZED_TEXT_LIMITS:
            raise ValidationError(f"Unknown localized field: {field}")

        version = self.editable_version(target_app_id=target_app_id)
        if not version:
            raise ValidationError(
                f"No editable version found for app {self._target_app(target_app_id)}. "
                "Versions must be in preparation or review state."
            )

        localization = self.app_store_version_localization(version["id"], locale)
        return self.update_app_store_version_localization(localization["id"], **{field: value})

    @staticmethod
    def _localized_attributes(fields: Dict[str, Optional[str]]) -> Dict[str, Any]:
        attributes = {}
        for key, value in fields.items():
            if value is None:
                continue
            if key not in LOCALIZED_TEXT_LIMITS:
                raise ValidationError(f"Unknown localized field: {key}")
            attribute, limit, label = LOCALIZED_TEXT_LIMITS[key]
            validate_length(label, value, limit)
            attributes[attribute] = value
        return attributes

    # ===== APP REVIEW DETAILS =====

    def app_store_review_detail(self, version_id: str) -> Optional[Dict[str, Any]]:
        """Review contact, demo account and notes; None when not created yet."""
        detail = self._get_optional(f"/appStoreVersions/{version_id}/appStoreReviewDetail")
        return flatten(detail, REVIEW_DETAIL_FIELDS)

    def create_app_store_review_detail(self, version_id: str, **fields: Any) -> Dict[str, Any]:
        result = self._create_resource(
            "appStoreReviewDetails",
            review_detail_attributes(**fields),
            {"appStoreVersion": resource_ref("appStoreVersions", version_id)},
        )
        return {"id": result["data"]["id"], "notes": dig(result, "data", "attributes", "notes")}

    def update_app_store_review_detail(self, detail_id: str, **fields: Any) -> Optional[Dict[str, Any]]:
        return self._update_resource(
            "appStoreReviewDetails", detail_id, review_detail_attributes(**fields)
        )

    def upsert_app_store_review_detail(self, version_id: str, **fields: Any) -> Dict[str, Any]:
        """Update the version's review detail, creating it first if missing."""
        detail = self.app_store_review_detail(version_id)
        if detail is None:
            logger.info(f"No review detail for version {version_id}; creating one")
            return self.create_app_store_review_detail(version_id, **fields)
        self.update_app_store_review_detail(detail["id"], **fields)
        return {"id": detail["id"], "notes": fields.get("notes", detail["notes"])}

    # ===== REVIEW SUBMISSIONS =====

    def create_review_submission(
        self, platform: str = "IOS", target_app_id: Optional[str] = None
    ) -> Dict[str, Any]:
        app_id = self._target_app(target_app_id)
        return self._create_resource(
            "reviewSubmissions",
            {"platform": platform},
            {"app": resource_ref("apps", app_id)},
        )

    def cancel_review_submission(self, submission_id: str) -> Optional[Dict[str, Any]]:
        return self._update_resource("reviewSubmissions", submission_id, {"canceled": True})

    # ===== CONTENT RIGHTS =====

    def content_rights_declaration(self, version_id: str) -> Optional[Dict[str, Any]]:
        result = self.get(f"/appStoreVersions/{version_id}")
        return flatten(
            result.get("data"),
            {
                "version_string": "versionString",
                "uses_third_party_content": "usesThirdPartyContent",
                "state": "appStoreState",
            },
        )

    def update_content_rights(
        self, version_id: str, uses_third_party_content: bool
    ) -> Optional[Dict[str, Any]]:
        return self._update_resource(
            "appStoreVersions",
            version_id,
            {"usesThirdPartyContent": uses_third_party_content},
        )
