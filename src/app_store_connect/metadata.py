"""
Listing metadata management for app-store-connect-cli.

This module provides portfolio-wide helpers on top of AppStoreConnectAPI:
multi-field listing updates with length validation, batch updates across
apps, localization coverage and CSV export.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .client import AppStoreConnectAPI
from .config import Configuration
from .exceptions import AppStoreConnectError
from .utils import truncate_string, validate_app_id, validate_length, validate_locale

logger = logging.getLogger(__name__)

# Field name, character limit, label used in validation errors
APP_LEVEL_LIMITS = {
    "name": (30, "App name"),
    "subtitle": (30, "App subtitle"),
}

VERSION_LEVEL_LIMITS = {
    "description": (4000, "Description"),
    "keywords": (100, "Keywords"),
    "promotional_text": (170, "Promotional text"),
    "whats_new": (4000, "What's New"),
}

APP_LEVEL_FIELDS = ("name", "subtitle", "privacy_url")


class MetadataManager:
    """
    High-level metadata manager for App Store Connect apps.

    Wraps an AppStoreConnectAPI with validation, per-field error collection
    and batch operations across the account's apps.
    """

    def __init__(self, api: AppStoreConnectAPI):
        self.api = api
        self._temp_cache: Optional[Dict[str, Dict[str, Any]]] = None
        self._in_batch_mode = False

    @contextmanager
    def batch_operation(self):
        """
        Cache the portfolio for the duration of the block.

        Usage:
            with manager.batch_operation():
                manager.get_localization_status()
                manager.export_app_metadata("apps.csv")
        """
        self._in_batch_mode = True
        self._temp_cache = {}
        try:
            yield
        finally:
            self._in_batch_mode = False
            self._temp_cache = None

    def get_app_portfolio(self, refresh_cache: bool = False) -> List[Dict[str, Any]]:
        """
        Collect every app with its app-level and version-level localizations.

        Args:
            refresh_cache: Ignore portfolio data cached by batch_operation

        Returns:
            List of app dictionaries
        """
        if not refresh_cache and self._in_batch_mode and self._temp_cache:
            return list(self._temp_cache.values())

        portfolio = []
        for app in self.api.apps():
            app_id = app["id"]
            editable_version = self.api.editable_version(target_app_id=app_id)
            app_info = {
                "id": app_id,
                "name": app.get("name"),
                "bundle_id": app.get("bundle_id"),
                "sku": app.get("sku"),
                "app_localizations": self._app_localizations(app_id),
                "version_localizations": self._version_localizations(editable_version),
                "editable_version": editable_version,
                "last_updated": datetime.now().isoformat(),
            }
            portfolio.append(app_info)

        if self._in_batch_mode:
            self._temp_cache = {app["id"]: app for app in portfolio}

        return portfolio

    def _app_localizations(self, app_id: str) -> Dict[str, Dict[str, Any]]:
        infos = self.api.app_infos(target_app_id=app_id)
        if not infos:
            return {}
        return {
            loc["locale"]: loc for loc in self.api.app_info_localizations(infos[0]["id"])
        }

    def _version_localizations(
        self, version: Optional[Dict[str, Any]]
    ) -> Dict[str, Dict[str, Any]]:
        if not version:
            return {}
        return {
            loc["locale"]: loc
            for loc in self.api.app_store_version_localizations(version["id"])
        }

    def update_app_listing(
        self,
        app_id: str,
        updates: Dict[str, Any],
        locale: str = "en-US",
        validate: bool = True,
    ) -> Dict[str, Any]:
        """
        Update several listing fields of one app.

        App-level fields (name, subtitle, privacy_url) go to the app info
        localization; the rest go to the editable version's localization.
        Each field succeeds or fails on its own.

        Args:
            app_id: The app ID to update
            updates: Field name to new value
            locale: Locale to update
            validate: Check IDs and lengths before sending

        Returns:
            {"success": bool, "updated": [fields], "errors": {field: message}}
        """
        if validate:
            app_id = validate_app_id(app_id)
            locale = validate_locale(locale)

        updated: List[str] = []
        errors: Dict[str, str] = {}

        unknown = set(updates) - set(APP_LEVEL_FIELDS) - set(VERSION_LEVEL_LIMITS)
        for field in sorted(unknown):
            errors[field] = f"Unknown field: {field}"

        for field in APP_LEVEL_FIELDS:
            if field not in updates:
                continue
            value = updates[field]
            try:
                if validate and field in APP_LEVEL_LIMITS:
                    limit, label = APP_LEVEL_LIMITS[field]
                    validate_length(label, value, limit)
                if field == "name":
                    self.api.update_app_name(value, locale, target_app_id=app_id)
                elif field == "subtitle":
                    self.api.update_app_subtitle(value, locale, target_app_id=app_id)
                else:
                    self.api.update_privacy_url(value, locale, target_app_id=app_id)
                updated.append(field)
            except AppStoreConnectError as e:
                logger.warning(f"Failed to update {field} for app {app_id}: {e}")
                errors[field] = str(e)

        version_updates = {k: v for k, v in updates.items() if k in VERSION_LEVEL_LIMITS}
        if version_updates and not self.api.editable_version(target_app_id=app_id):
            logger.warning(
                f"No editable version found for app {app_id}. "
                "Cannot update version-level fields."
            )
            for field in version_updates:
                errors[field] = "No editable version"
            version_updates = {}

        for field, value in version_updates.items():
            try:
                if validate:
                    limit, label = VERSION_LEVEL_LIMITS[field]
                    validate_length(label, value, limit)
                self.api.update_localized_text(field, value, locale, target_app_id=app_id)
                updated.append(field)
            except AppStoreConnectError as e:
                logger.warning(f"Failed to update {field} for app {app_id}: {e}")
                errors[field] = str(e)

        return {"success": not errors, "updated": updated, "errors": errors}

    def batch_update_apps(
        self,
        updates: Dict[str, Dict[str, Any]],
        locale: str = "en-US",
        continue_on_error: bool = True,
    ) -> Dict[str, Dict[str, Any]]:
        """
        Apply update_app_listing to several apps.

        Args:
            updates: App ID to field updates
            locale: Locale to update
            continue_on_error: Keep going after an app raises

        Returns:
            {"results": {app_id: listing result or {"error": message}}}
        """
        locale = validate_locale(locale)
        results: Dict[str, Dict[str, Any]] = {}

        for app_id, app_updates in updates.items():
            try:
                app_id = validate_app_id(app_id)
                results[app_id] = self.update_app_listing(app_id, app_updates, locale)
            except AppStoreConnectError as e:
                logger.error(f"Error updating app {app_id}: {e}")
                results[app_id] = {"error": str(e)}
                if not continue_on_error:
                    break

        return {"results": results}

    def _select_apps(
        self, app_ids: Optional[List[str]]
    ) -> Tuple[List[str], Dict[str, Dict[str, Any]]]:
        portfolio = self.get_app_portfolio()
        portfolio_dict = {app["id"]: app for app in portfolio}
        if app_ids is None:
            return [app["id"] for app in portfolio], portfolio_dict
        return [validate_app_id(app_id) for app_id in app_ids], portfolio_dict

    def get_localization_status(
        self, app_ids: Optional[List[str]] = None
    ) -> Dict[str, Dict[str, Any]]:
        """
        Report which locales exist at app level and version level.

        Args:
            app_ids: Apps to check (all apps if None)

        Returns:
            App ID to locale coverage, with the locales missing on each level
        """
        with self.batch_operation():
            selected, portfolio_dict = self._select_apps(app_ids)
            results: Dict[str, Dict[str, Any]] = {}

            for app_id in selected:
                if app_id not in portfolio_dict:
                    results[app_id] = {"error": "App not found"}
                    continue

                app_data = portfolio_dict[app_id]
                app_locales = set(app_data["app_localizations"])
                version_locales = set(app_data["version_localizations"])
                all_locales = app_locales | version_locales

                results[app_id] = {
                    "app_name": app_data["name"],
                    "app_level_locales": sorted(app_locales),
                    "version_level_locales": sorted(version_locales),
                    "total_locales": len(all_locales),
                    "missing_app_level": sorted(all_locales - app_locales),
                    "missing_version_level": sorted(all_locales - version_locales),
                }

            return results

    def export_app_metadata(
        self,
        output_path: str,
        app_ids: Optional[List[str]] = None,
        include_versions: bool = True,
    ) -> bool:
        """
        Write one CSV row per app with its localized listing fields.

        Args:
            output_path: Path to save the CSV file
            app_ids: Apps to export (all if None)
            include_versions: Add editable version and its localizations

        Returns:
            True if the file was written

        Raises:
            AppStoreConnectError: If fetching the portfolio fails
            OSError: If the file cannot be written
        """
        import pandas as pd

        with self.batch_operation():
            selected, portfolio_dict = self._select_apps(app_ids)
            export_data = []

            for app_id in selected:
                if app_id not in portfolio_dict:
                    continue

                app_data = portfolio_dict[app_id]
                row = {
                    "app_id": app_id,
                    "name": app_data.get("name") or "",
                    "bundle_id": app_data.get("bundle_id") or "",
                    "sku": app_data.get("sku") or "",
                }

                for locale, data in app_data["app_localizations"].items():
                    row[f"name_{locale}"] = data.get("name")
                    row[f"subtitle_{locale}"] = data.get("subtitle")
                    row[f"privacy_url_{locale}"] = data.get("privacy_policy_url")

                if include_versions:
                    version = app_data.get("editable_version") or {}
                    attributes = version.get("attributes") or {}
                    row["editable_version"] = attributes.get("versionString")
                    row["editable_state"] = attributes.get("appStoreState")

                    for locale, data in app_data["version_localizations"].items():
                        row[f"description_{locale}"] = truncate_string(
                            data.get("description") or "", 100
                        )
                        row[f"keywords_{locale}"] = data.get("keywords")
                        row[f"promo_text_{locale}"] = data.get("promotional_text")

                export_data.append(self._format_for_export(row))

            pd.DataFrame(export_data).to_csv(output_path, index=False)
            logger.info(f"Exported metadata for {len(export_data)} apps to {output_path}")
            return True

    def _format_for_export(self, data: Dict[str, Any]) -> Dict[str, Any]:
        formatted = {}
        for key, value in data.items():
            if isinstance(value, (list, dict)):
                formatted[key] = str(value)
            elif isinstance(value, bool):
                formatted[key] = "Yes" if value else "No"
            elif value is None:
                formatted[key] = ""
            else:
                formatted[key] = value
        return formatted


def create_metadata_manager(config: Optional[Configuration] = None) -> MetadataManager:
    """Build a MetadataManager around a client configured from ``config`` or the environment."""
    return MetadataManager(AppStoreConnectAPI(config or Configuration.from_env()))
