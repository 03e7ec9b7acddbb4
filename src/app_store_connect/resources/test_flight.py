"""TestFlight: beta testers, groups, build distribution and beta review."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..utils import compact, dig, flatten, resource_ref
from .versions import REVIEW_DETAIL_FIELDS, review_detail_attributes

logger = logging.getLogger(__name__)

TESTER_FIELDS = {
    "email": "email",
    "first_name": "firstName",
    "last_name": "lastName",
    "invite_type": "inviteType",
    "state": "state",
}

GROUP_FIELDS = {
    "name": "name",
    "is_internal": "isInternalGroup",
    "public_link_enabled": "publicLinkEnabled",
    "public_link": "publicLink",
    "public_link_limit": "publicLinkLimit",
    "public_link_limit_enabled": "publicLinkLimitEnabled",
    "created_date": "createdDate",
}

TESTFLIGHT_BUILD_FIELDS = {
    "version": "version",
    "uploaded_date": "uploadedDate",
    "processing_state": "processingState",
    "uses_non_exempt_encryption": "usesNonExemptEncryption",
    "expired": "expired",
}

BETA_LOCALIZATION_FIELDS = {"locale": "locale", "whats_new": "whatsNew"}


def _refs(resource_type: str, ids: Sequence[str]) -> Dict[str, Any]:
    return {"data": [resource_ref(resource_type, resource_id) for resource_id in ids]}


class BetaTestingMixin:
    """Beta testing."""

    # ===== BETA TESTERS =====

    def beta_testers(self, target_app_id: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        app_id = self._target_app(target_app_id)
        result = self.get("/betaTesters", params={"filter[apps]": app_id, "limit": limit})
        return [flatten(tester, TESTER_FIELDS) for tester in result.get("data") or []]

    def beta_tester(self, tester_id: str) -> Dict[str, Any]:
        return flatten(self.get(f"/betaTesters/{tester_id}")["data"], TESTER_FIELDS)

    def create_beta_tester(
        self,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        group_ids: Sequence[str] = (),
        target_app_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Invite a tester into the given groups, or straight to the app."""
        if group_ids:
            relationships = {
                "betaGroups": [resource_ref("betaGroups", gid) for gid in group_ids]
            }
        else:
            app_id = self._target_app(target_app_id)
            relationships = {"apps": [resource_ref("apps", app_id)]}

        result = self._create_resource(
            "betaTesters",
            compact(email=email, firstName=first_name, lastName=last_name),
            relationships,
        )
        return flatten(result["data"], {"email": "email", "state": "state"})

    def delete_beta_tester(self, tester_id: str) -> Dict[str, Any]:
        return self.delete(f"/betaTesters/{tester_id}")

    def add_tester_to_groups(self, tester_id: str, group_ids: Sequence[str]) -> Dict[str, Any]:
        return self.post(
            f"/betaTesters/{tester_id}/relationships/betaGroups",
            body=_refs("betaGroups", group_ids),
        )

    def remove_tester_from_groups(self, tester_id: str, group_ids: Sequence[str]) -> Dict[str, Any]:
        return self.delete_with_body(
            f"/betaTesters/{tester_id}/relationships/betaGroups",
            body=_refs("betaGroups", group_ids),
        )

    # ===== BETA GROUPS =====

    def beta_groups(self, target_app_id: Optional[str] = None) -> List[Dict[str, Any]]:
        app_id = self._target_app(target_app_id)
        result = self.get(f"/apps/{app_id}/betaGroups")
        return [flatten(group, GROUP_FIELDS) for group in result.get("data") or []]

    def beta_group(self, group_id: str) -> Dict[str, Any]:
        return flatten(self.get(f"/betaGroups/{group_id}")["data"], GROUP_FIELDS)

    def create_beta_group(
        self,
        name: str,
        public_link_enabled: bool = False,
        public_link_limit: Optional[int] = None,
        public_link_limit_enabled: bool = False,
        feedback_enabled: bool = True,
        target_app_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        app_id = self._target_app(target_app_id)
        attributes = compact(
            name=name,
            publicLinkEnabled=public_link_enabled,
            publicLinkLimitEnabled=public_link_limit_enabled,
            feedbackEnabled=feedback_enabled,
            publicLinkLimit=public_link_limit,
        )
        result = self._create_resource(
            "betaGroups", attributes, {"app": resource_ref("apps", app_id)}
        )
        return flatten(result["data"], {"name": "name", "public_link": "publicLink"})

    def update_beta_group(
        self,
        group_id: str,
        name: Optional[str] = None,
        public_link_enabled: Optional[bool] = None,
        public_link_limit: Optional[int] = None,
        public_link_limit_enabled: Optional[bool] = None,
        feedback_enabled: Optional[bool] = None,
    ) -> Optional[Dict[str, Any]]:
        attributes = compact(
            name=name,
            publicLinkEnabled=public_link_enabled,
            publicLinkLimit=public_link_limit,
            publicLinkLimitEnabled=public_link_limit_enabled,
            feedbackEnabled=feedback_enabled,
        )
        return self._update_resource("betaGroups", group_id, attributes)

    def delete_beta_group(self, group_id: str) -> Dict[str, Any]:
        return self.delete(f"/betaGroups/{group_id}")

    def beta_group_testers(self, group_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        result = self.get(f"/betaGroups/{group_id}/betaTesters", params={"limit": limit})
        return [flatten(tester, TESTER_FIELDS) for tester in result.get("data") or []]

    def add_testers_to_group(self, group_id: str, tester_ids: Sequence[str]) -> Dict[str, Any]:
        return self.post(
            f"/betaGroups/{group_id}/relationships/betaTesters",
            body=_refs("betaTesters", tester_ids),
        )

    def remove_testers_from_group(self, group_id: str, tester_ids: Sequence[str]) -> Dict[str, Any]:
        return self.delete_with_body(
            f"/betaGroups/{group_id}/relationships/betaTesters",
            body=_refs("betaTesters", tester_ids),
        )

    # ===== BUILD DISTRIBUTION =====

    def testflight_builds(self, target_app_id: Optional[str] = None, limit: int = 20) -> List[Dict[str, Any]]:
        app_id = self._target_app(target_app_id)
        result = self.get(
            "/builds",
            params={"filter[app]": app_id, "limit": limit, "sort": "-uploadedDate"},
        )
        return [flatten(build, TESTFLIGHT_BUILD_FIELDS) for build in result.get("data") or []]

    def beta_build_detail(self, build_id: str) -> Optional[Dict[str, Any]]:
        detail = self._get_optional(f"/builds/{build_id}/buildBetaDetail")
        return flatten(
            detail,
            {
                "auto_notify_enabled": "autoNotifyEnabled",
                "internal_build_state": "internalBuildState",
                "external_build_state": "externalBuildState",
            },
        )

    def update_beta_build_detail(self, beta_detail_id: str, auto_notify_enabled: bool) -> Optional[Dict[str, Any]]:
        return self._update_resource(
            "buildBetaDetails", beta_detail_id, {"autoNotifyEnabled": auto_notify_enabled}
        )

    def add_build_to_groups(self, build_id: str, group_ids: Sequence[str]) -> Dict[str, Any]:
        logger.info(f"Distributing build {build_id} to groups {', '.join(group_ids)}")
        return self.post(
            f"/builds/{build_id}/relationships/betaGroups", body=_refs("betaGroups", group_ids)
        )

    def remove_build_from_groups(self, build_id: str, group_ids: Sequence[str]) -> Dict[str, Any]:
        return self.delete_with_body(
            f"/builds/{build_id}/relationships/betaGroups", body=_refs("betaGroups", group_ids)
        )

    def build_beta_groups(self, build_id: str) -> List[Dict[str, Any]]:
        result = self.get(f"/builds/{build_id}/betaGroups")
        return [
            flatten(group, {"name": "name", "is_internal": "isInternalGroup"})
            for group in result.get("data") or []
        ]

    # ===== BETA WHAT'S NEW =====

    def beta_build_localizations(self, build_id: str) -> List[Dict[str, Any]]:
        result = self.get(f"/builds/{build_id}/betaBuildLocalizations")
        return [flatten(loc, BETA_LOCALIZATION_FIELDS) for loc in result.get("data") or []]

    def create_beta_build_localization(self, build_id: str, locale: str, whats_new: str) -> Dict[str, Any]:
        result = self._create_resource(
            "betaBuildLocalizations",
            {"locale": locale, "whatsNew": whats_new},
            {"build": resource_ref("builds", build_id)},
        )
        return flatten(result["data"], BETA_LOCALIZATION_FIELDS)

    def update_beta_build_localization(self, localization_id: str, whats_new: str) -> Optional[Dict[str, Any]]:
        return self._update_resource(
            "betaBuildLocalizations", localization_id, {"whatsNew": whats_new}
        )

    # ===== BETA APP REVIEW =====

    def beta_app_review_detail(self, target_app_id: Optional[str] = None) -> Dict[str, Any]:
        app_id = self._target_app(target_app_id)
        return flatten(
            self.get(f"/apps/{app_id}/betaAppReviewDetail")["data"], REVIEW_DETAIL_FIELDS
        )

    def update_beta_app_review_detail(self, detail_id: str, **fields: Any) -> Optional[Dict[str, Any]]:
        return self._update_resource(
            "betaAppReviewDetails", detail_id, review_detail_attributes(**fields)
        )

    def submit_for_beta_review(self, build_id: str) -> Dict[str, Any]:
        """Submit a build to beta App Review (required for external testers)."""
        return self._create_resource(
            "betaAppReviewSubmissions",
            relationships={"build": resource_ref("builds", build_id)},
        )

    def beta_app_review_submission(self, build_id: str) -> Optional[Dict[str, Any]]:
        submission = self._get_optional(f"/builds/{build_id}/betaAppReviewSubmission")
        result = flatten(
            submission,
            {"beta_review_state": "betaReviewState", "submitted_date": "submittedDate"},
        )
        if result:
            logger.debug(f"Beta review for build {build_id}: {dig(result, 'beta_review_state')}")
        return result
