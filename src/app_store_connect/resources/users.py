"""Team users and invitations."""

from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import ValidationError
from ..utils import compact, flatten, resource_ref

USER_ROLES = (
    "ADMIN",
    "FINANCE",
    "ACCOUNT_HOLDER",
    "SALES",
    "MARKETING",
    "APP_MANAGER",
    "DEVELOPER",
    "ACCESS_TO_REPORTS",
    "CUSTOMER_SUPPORT",
    "CREATE_APPS",
    "CLOUD_MANAGED_DEVELOPER_ID",
    "CLOUD_MANAGED_APP_DISTRIBUTION",
    "GENERATE_INDIVIDUAL_KEYS",
)

USER_FIELDS = {
    "username": "username",
    "first_name": "firstName",
    "last_name": "lastName",
    "email": "email",
    "roles": "roles",
    "all_apps_visible": "allAppsVisible",
    "provisioning_allowed": "provisioningAllowed",
}

INVITATION_FIELDS = {
    "email": "email",
    "first_name": "firstName",
    "last_name": "lastName",
    "roles": "roles",
    "expiration_date": "expirationDate",
    "all_apps_visible": "allAppsVisible",
    "provisioning_allowed": "provisioningAllowed",
}


def _validate_roles(roles: Sequence[str]) -> List[str]:
    unknown = [role for role in roles if role not in USER_ROLES]
    if unknown:
        raise ValidationError(f"Unknown user role(s): {', '.join(unknown)}")
    return list(roles)


class UsersMixin:
    def users(self, limit: int = 100) -> List[Dict[str, Any]]:
        result = self.get("/users", params={"limit": limit})
        return [flatten(user, USER_FIELDS) for user in result.get("data") or []]

    def user(self, user_id: str) -> Dict[str, Any]:
        return flatten(self.get(f"/users/{user_id}")["data"], USER_FIELDS)

    def update_user(
        self,
        user_id: str,
        roles: Optional[Sequence[str]] = None,
        all_apps_visible: Optional[bool] = None,
    ) -> Optional[Dict[str, Any]]:
        attributes = compact(
            roles=_validate_roles(roles) if roles else None,
            allAppsVisible=all_apps_visible,
        )
        return self._update_resource("users", user_id, attributes)

    def delete_user(self, user_id: str) -> Dict[str, Any]:
        return self.delete(f"/users/{user_id}")

    def user_invitations(self, limit: int = 100) -> List[Dict[str, Any]]:
        result = self.get("/userInvitations", params={"limit": limit})
        return [flatten(invite, INVITATION_FIELDS) for invite in result.get("data") or []]

    def create_user_invitation(
        self,
        email: str,
        first_name: str,
        last_name: str,
        roles: Sequence[str],
        all_apps_visible: bool = True,
        provisioning_allowed: bool = False,
        visible_app_ids: Sequence[str] = (),
    ) -> Dict[str, Any]:
        """Invite someone to the team; ``visible_app_ids`` limits their apps."""
        relationships = None
        if visible_app_ids:
            relationships = {
                "visibleApps": [resource_ref("apps", app_id) for app_id in visible_app_ids]
            }

        result = self._create_resource(
            "userInvitations",
            {
                "email": email,
                "firstName": first_name,
                "lastName": last_name,
                "roles": _validate_roles(roles),
                "allAppsVisible": all_apps_visible,
                "provisioningAllowed": provisioning_allowed,
            },
            relationships,
        )
        return flatten(
            result["data"],
            {"email": "email", "roles": "roles", "expiration_date": "expirationDate"},
        )

    def delete_user_invitation(self, invitation_id: str) -> Dict[str, Any]:
        return self.delete(f"/userInvitations/{invitation_id}")
