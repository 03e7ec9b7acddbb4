"""
Command-line interface for app-store-connect-cli.

Usage:
    asc status                      # Full app status summary
    asc review                      # Recent review submissions
    asc ready                       # Check if ready for submission
    asc update-whats-new "Bug fixes"
    asc --json subs                 # Machine-readable output
    asc help

Credentials come from APP_STORE_CONNECT_* environment variables.
"""

import argparse
import json
import logging
import os
import re
import sys
from typing import Any, Callable, Dict, List, Optional

from .client import AppStoreConnectAPI
from .config import Configuration
from .exceptions import (
    AppStoreConnectError,
    ConfigurationError,
    PermissionError,
    ValidationError,
)
from .resources.screenshots import DISPLAY_TYPES
from .resources.subscriptions import (
    INTRO_OFFER_MODES,
    SUBSCRIPTION_PERIODS,
    normalize_subscription_period,
)
from .session import SESSION_ENV_VAR, Session
from .utils import truncate_string

logger = logging.getLogger(__name__)

RED = "31"
GREEN = "32"
YELLOW = "33"
BOLD = "1"

STATE_COLORS = {
    "READY_FOR_SALE": GREEN,
    "APPROVED": GREEN,
    "READY_TO_SUBMIT": GREEN,
    "COMPLETE": GREEN,
    "WAITING_FOR_REVIEW": YELLOW,
    "IN_REVIEW": YELLOW,
    "PENDING_DEVELOPER_RELEASE": YELLOW,
    "REJECTED": RED,
    "METADATA_REJECTED": RED,
    "DEVELOPER_REJECTED": RED,
    "MISSING_METADATA": RED,
    "UNRESOLVED_ISSUES": RED,
}

# Versions whose localizations the text commands read and edit, in priority order
ACTIVE_VERSION_STATES = ("WAITING_FOR_REVIEW", "PREPARE_FOR_SUBMISSION")


class Output:
    """Console writer honouring --json, --no-color and --quiet."""

    def __init__(self, as_json: bool = False, color: bool = True, quiet: bool = False, stream=None):
        self.as_json = as_json
        self.color = color
        self.quiet = quiet
        self.stream = stream or sys.stdout

    def paint(self, text: str, code: str) -> str:
        if not self.color:
            return text
        return f"\033[{code}m{text}\033[0m"

    def state(self, state: Optional[str]) -> str:
        text = state or "UNKNOWN"
        code = STATE_COLORS.get(text)
        return self.paint(text, code) if code else text

    def line(self, text: str = "") -> None:
        if not self.quiet:
            print(text, file=self.stream)

    def heading(self, text: str) -> None:
        self.line(self.paint(text, BOLD))
        self.line("=" * 50)
        self.line()

    def success(self, text: str) -> None:
        # Confirmation of a write is printed even in quiet mode
        if self.as_json:
            print(json.dumps({"status": "ok", "message": text}), file=self.stream)
        else:
            print(self.paint(text, GREEN), file=self.stream)

    def warn(self, text: str) -> None:
        self.line(self.paint(text, YELLOW))

    def error(self, text: str) -> None:
        print(self.paint(text, RED), file=sys.stderr)

    def emit(self, data: Any, render: Callable[[Any], None]) -> None:
        """Print ``data`` as JSON in --json mode, otherwise hand it to ``render``."""
        if self.as_json:
            print(json.dumps(data, indent=2, default=str), file=self.stream)
        else:
            render(data)


# ===== SHARED HELPERS =====


def _active_version(api: AppStoreConnectAPI, fallback_to_first: bool = True) -> Optional[Dict]:
    version = api.find_version(*ACTIVE_VERSION_STATES)
    if version is None and fallback_to_first:
        versions = api.app_store_versions()
        version = versions[0] if versions else None
    return version


def _active_localization(api: AppStoreConnectAPI, locale: str) -> Optional[Dict]:
    version = _active_version(api, fallback_to_first=False)
    if version is None:
        return None
    for localization in api.app_store_version_localizations(version["id"]):
        if localization["locale"] == locale:
            return localization
    return None


def _text_or_none(value: Optional[str]) -> str:
    return value if value else "(none)"


# ===== APPS & REVIEW =====


def cmd_status(api: AppStoreConnectAPI, args: argparse.Namespace, out: Output) -> None:
    def render(status):
        out.heading("App Store Connect Status")
        app = status["app"]
        out.line(f"{out.paint('App:', BOLD)} {app['name']} ({app['bundle_id']})")
        out.line()
        out.line(out.paint("Versions:", BOLD))
        for version in status["versions"]:
            out.line(
                f"  {version['version']}: {out.state(version['state'])} ({version['release_type']})"
            )
        out.line()
        review = status["latest_review"]
        if review:
            out.line(out.paint("Latest Review Submission:", BOLD))
            out.line(f"  State: {out.state(review['state'])}")
            out.line(f"  Platform: {review['platform']}")
            if review["submitted"]:
                out.line(f"  Submitted: {review['submitted']}")
            out.line()
        out.line(out.paint("Subscription Products:", BOLD))
        for sub in sorted(status["subscriptions"], key=lambda s: s.get("group_level") or 0):
            out.line(f"  {sub['name']}: {out.state(sub['state'])} (Level {sub['group_level']})")
            out.line(f"    Product ID: {sub['product_id']}")

    out.emit(api.app_status(), render)


def cmd_apps(api, args, out):
    def render(apps):
        out.heading("Apps")
        for app in apps:
            out.line(f"  {app['name']} ({app['bundle_id']})")
            out.line(f"    ID: {app['id']}  SKU: {app['sku']}")

    out.emit(api.apps(), render)


def cmd_builds(api, args, out):
    def render(builds):
        out.heading("Recent Builds")
        if not builds:
            out.line("No builds found.")
        for build in builds:
            out.line(
                f"  Build {build['version']}: {out.state(build['processing_state'])}"
                f" (uploaded {build['uploaded']})"
            )

    out.emit(api.builds(limit=args.limit), render)


def cmd_review(api, args, out):
    def render(submissions):
        out.heading("Review Submissions")
        if not submissions:
            out.line("No review submissions found.")
            return
        for i, submission in enumerate(submissions, 1):
            attrs = submission.get("attributes") or {}
            out.line(f"{i}. {out.state(attrs.get('state'))}")
            out.line(f"   Platform: {attrs.get('platform')}")
            out.line(f"   Submitted: {attrs.get('submittedDate') or 'N/A'}")
            out.line()

    out.emit(api.review_submissions(limit=args.limit), render)


def cmd_ready(api, args, out):
    readiness = api.submission_readiness()

    def render(result):
        out.heading("Submission Readiness")
        out.line(f"Current state: {out.state(result['current_state'])}")
        out.line()
        if result["ready"]:
            out.success("Ready for submission!")
            return
        out.line(out.paint("Issues:", RED))
        for issue in result["issues"]:
            out.line(f"  - {issue}")

    out.emit(readiness, render)
    return 0 if readiness["ready"] else 1


def cmd_rejection(api, args, out):
    rejection = api.rejection_info()
    if rejection is None:
        out.emit(None, lambda _: out.success("No rejected versions found."))
        return

    result = dict(rejection, items=[], messages=[])
    if rejection["submission_id"]:
        result["items"] = api.review_submission_items(rejection["submission_id"])
        if api.session_available():
            threads = api.resolution_center_threads(rejection["submission_id"])
            for thread in threads.get("data") or []:
                result["messages"].extend(api.rejection_reasons(thread["id"]))

    def render(info):
        out.heading("Rejection Details")
        if info["submission_state"] == "UNRESOLVED_ISSUES" and not info["state"]:
            out.line(out.paint("Submission has UNRESOLVED ISSUES (rejection pending)", RED))
        else:
            out.line(f"Version {info['version_string']}: {out.state(info['state'])}")
        for key in ("version_id", "submission_id", "submission_state"):
            if info[key]:
                out.line(f"{key.replace('_', ' ').title()}: {info[key]}")
        for item in info["items"]:
            out.line(f"  - item {item['id']}: {out.state(item['state'])}")
        if info["messages"]:
            out.line()
            out.line(out.paint("Resolution Center:", BOLD))
            for message in info["messages"]:
                out.line(f"[{message['created_date']}]")
                out.line(message["body"] or "")
                out.line()
        elif info["submission_id"] and not api.session_available():
            out.warn("Set FASTLANE_SESSION to read Resolution Center messages.")

    out.emit(result, render)


def cmd_session(api, args, out):
    session = api.session
    if args.action == "save":
        data = args.data or os.getenv(SESSION_ENV_VAR)
        if not data:
            raise ValidationError(f"No session data: pass it or set {SESSION_ENV_VAR}")
        session.save(data)
        out.success(f"Session saved to {session.session_file}")
    elif args.action == "clear":
        session.clear()
        out.success("Session cleared")
    else:
        state = {"valid": session.valid(), "cookies": sorted(session.cookies)}

        def render(data):
            if data["valid"]:
                out.success("Web session available")
            else:
                out.warn("No valid web session (run 'fastlane spaceauth' and 'asc session save')")

        out.emit(state, render)


# ===== APP REVIEW =====


def _require_version(api, *states: str) -> Dict[str, Any]:
    version = api.find_version(*states)
    if version is None:
        raise AppStoreConnectError(f"No version in {' or '.join(states)} state")
    return version


def _version_string(version: Dict[str, Any]) -> str:
    return (version.get("attributes") or {}).get("versionString") or version["id"]


def _confirm(args: argparse.Namespace, prompt: str) -> bool:
    if getattr(args, "yes", False):
        return True
    return input(f"{prompt} (y/N): ").strip().lower() == "y"


def cmd_review_info(api, args, out):
    version = _active_version(api, fallback_to_first=False)
    if version is None:
        out.emit(None, lambda _: out.line("No active version found."))
        return

    detail = api.app_store_review_detail(version["id"])
    if detail and detail["demo_account_password"]:
        detail["demo_account_password"] = "****"

    def render(data):
        attrs = version.get("attributes") or {}
        out.heading("App Review Details")
        out.line(f"{out.paint('Version:', BOLD)} {attrs.get('versionString')} ({out.state(attrs.get('appStoreState'))})")
        out.line()
        if not data:
            out.line("No review detail found for this version.")
            return
        name = " ".join(filter(None, [data["contact_first_name"], data["contact_last_name"]]))
        out.line(out.paint("Review Contact:", BOLD))
        out.line(f"  Name: {_text_or_none(name)}")
        out.line(f"  Email: {_text_or_none(data['contact_email'])}")
        out.line(f"  Phone: {_text_or_none(data['contact_phone'])}")
        out.line()
        out.line(out.paint("Demo Account:", BOLD))
        out.line(f"  Required: {data['demo_account_required']}")
        out.line(f"  Username: {data['demo_account_name'] or '(not set)'}")
        out.line(f"  Password: {data['demo_account_password'] or '(not set)'}")
        out.line()
        out.line(out.paint("Notes for Reviewer:", BOLD))
        out.line(f"  {_text_or_none(data['notes'])}")

    out.emit(detail, render)


def _upsert_review_detail(api, out, message: str, **fields) -> None:
    version = _active_version(api, fallback_to_first=False)
    if version is None:
        raise AppStoreConnectError("No active version found to update")
    api.upsert_app_store_review_detail(version["id"], **fields)
    out.success(f"{message} (version {_version_string(version)})")


def cmd_update_review_notes(api, args, out):
    _upsert_review_detail(api, out, "Review notes updated", notes=" ".join(args.text).strip())


def cmd_update_review_contact(api, args, out):
    fields = {
        "contact_first_name": args.first_name,
        "contact_last_name": args.last_name,
        "contact_email": args.email,
        "contact_phone": args.phone,
    }
    if all(value is None for value in fields.values()):
        raise ValidationError("Pass at least one of --first-name, --last-name, --email, --phone")
    _upsert_review_detail(api, out, "Review contact updated", **fields)


def cmd_update_demo_account(api, args, out):
    if args.username is None and args.password is None and args.required is None:
        raise ValidationError("Pass --username, --password, --required or --not-required")
    _upsert_review_detail(
        api,
        out,
        "Demo account updated",
        demo_account_name=args.username,
        demo_account_password=args.password,
        demo_account_required=args.required,
    )


def cmd_create_review_detail(api, args, out):
    version = _active_version(api, fallback_to_first=False)
    if version is None:
        raise AppStoreConnectError("No active version found")

    existing = api.app_store_review_detail(version["id"])
    if existing:
        out.warn(f"Review detail already exists for version {_version_string(version)} ({existing['id']})")
        return

    result = api.create_app_store_review_detail(
        version["id"],
        notes=args.notes,
        contact_email=args.email,
        demo_account_name=args.demo_user,
        demo_account_password=args.demo_pass,
    )
    out.success(f"Review detail {result['id']} created for version {_version_string(version)}")


def cmd_submit(api, args, out):
    version = api.find_version("READY_FOR_SUBMISSION")
    if version is None:
        preparing = api.find_version("PREPARE_FOR_SUBMISSION")
        if preparing:
            out.warn(f"Version {_version_string(preparing)} is still being prepared.")
            out.line("Complete all required metadata before submitting.")
        else:
            out.warn("No version ready for submission.")
        return 1

    label = _version_string(version)
    if not _confirm(args, f"Submit version {label} for review?"):
        out.line("Cancelled.")
        return
    api.create_review_submission(platform=args.platform)
    out.success(f"Version {label} submitted for review")


def cmd_cancel_review(api, args, out):
    submissions = api.review_submissions(limit=args.limit)
    pending = next(
        (s for s in submissions if (s.get("attributes") or {}).get("state") == "WAITING_FOR_REVIEW"),
        None,
    )
    if pending is None:
        out.warn("No pending review submission to cancel.")
        return
    if not _confirm(args, "Cancel review submission?"):
        out.line("Cancelled.")
        return
    api.cancel_review_submission(pending["id"])
    out.success(f"Review submission {pending['id']} cancelled")


def cmd_content_rights(api, args, out):
    version = api.find_version("PREPARE_FOR_SUBMISSION", "WAITING_FOR_REVIEW")
    if version is None:
        out.emit(None, lambda _: out.line("No active version found."))
        return

    def render(rights):
        out.heading("Content Rights Declaration")
        out.line(f"Version: {rights['version_string']}")
        out.line()
        uses = rights["uses_third_party_content"]
        if uses is None:
            out.warn("Content rights not yet declared.")
            out.line("Set with: asc set-content-rights yes|no")
        elif uses:
            out.line(out.paint("Uses Third-Party Content: YES", GREEN))
        else:
            out.line(out.paint("Uses Third-Party Content: NO", GREEN))

    out.emit(api.content_rights_declaration(version["id"]), render)


def cmd_set_content_rights(api, args, out):
    uses = args.answer in ("yes", "true", "1")
    version = _require_version(api, "PREPARE_FOR_SUBMISSION")
    api.update_content_rights(version["id"], uses)
    out.success(
        f"Content rights set for version {_version_string(version)}: "
        f"{'YES (uses third-party content)' if uses else 'NO (no third-party content)'}"
    )


# ===== VERSION METADATA =====


def cmd_version_info(api, args, out):
    version = _active_version(api)
    if version is None:
        out.emit(None, lambda _: out.line("No versions found."))
        return

    localizations = api.app_store_version_localizations(version["id"])

    def render(locs):
        attrs = version.get("attributes") or {}
        out.heading("Version Localizations")
        out.line(f"{out.paint('Version:', BOLD)} {attrs.get('versionString')} ({attrs.get('appStoreState')})")
        out.line()
        for loc in locs:
            out.line(out.paint(f"{loc['locale']}:", BOLD))
            out.line(f"  Description: {truncate_string(_text_or_none(loc['description']), 100)}")
            out.line(f"  What's New: {_text_or_none(loc['whats_new'])}")
            out.line(f"  Keywords: {_text_or_none(loc['keywords'])}")
            out.line(f"  Support URL: {_text_or_none(loc['support_url'])}")
            out.line()

    out.emit(localizations, render)


def _show_localized_field(api, out, field: str, title: str, locale: str) -> None:
    version = _active_version(api)
    if version is None:
        out.emit(None, lambda _: out.line("No versions found."))
        return
    localization = api.app_store_version_localization(version["id"], locale)

    def render(loc):
        out.heading(title)
        out.line(f"{out.paint('Locale:', BOLD)} {loc['locale']}")
        out.line()
        out.line(_text_or_none(loc[field]))

    out.emit(localization, render)


def _update_localized_field(api, args, out, field: str, label: str) -> None:
    text = " ".join(args.text).strip()
    api.update_localized_text(field, text, args.locale)
    out.success(f"Updated {label} ({args.locale})")


def cmd_description(api, args, out):
    _show_localized_field(api, out, "description", "App Description", args.locale)


def cmd_keywords(api, args, out):
    _show_localized_field(api, out, "keywords", "Keywords", args.locale)


def cmd_update_description(api, args, out):
    _update_localized_field(api, args, out, "description", "description")


def cmd_update_keywords(api, args, out):
    _update_localized_field(api, args, out, "keywords", "keywords")


def cmd_update_whats_new(api, args, out):
    _update_localized_field(api, args, out, "whats_new", "\"What's New\" text")


def cmd_update_promotional_text(api, args, out):
    _update_localized_field(api, args, out, "promotional_text", "promotional text")


def cmd_urls(api, args, out):
    version = _active_version(api)
    if version is None:
        out.emit(None, lambda _: out.line("No versions found."))
        return

    localizations = api.app_store_version_localizations(version["id"])
    if args.locale:
        selected = [loc for loc in localizations if loc["locale"] == args.locale]
        if not selected:
            available = ", ".join(loc["locale"] for loc in localizations)
            raise AppStoreConnectError(f"Locale not found: {args.locale} (available: {available})")
        localizations = selected
    urls = [
        {"locale": loc["locale"], "marketing_url": loc["marketing_url"], "support_url": loc["support_url"]}
        for loc in localizations
    ]

    def render(rows):
        out.heading("App URLs")
        out.line(f"{out.paint('Version:', BOLD)} {_version_string(version)}")
        out.line()
        for row in rows:
            out.line(out.paint(f"{row['locale']}:", BOLD))
            out.line(f"  Marketing URL: {row['marketing_url'] or '(not set)'}")
            out.line(f"  Support URL: {row['support_url'] or '(not set)'}")

    out.emit(urls, render)


def _update_version_url(api, args, out, field: str, label: str) -> None:
    localization = _active_localization(api, args.locale)
    if localization is None:
        raise AppStoreConnectError(f"No editable version localization for {args.locale}")
    api.update_app_store_version_localization(localization["id"], **{field: args.url})
    out.success(f"Updated {label} ({args.locale}): {args.url}")


def cmd_update_marketing_url(api, args, out):
    _update_version_url(api, args, out, "marketing_url", "marketing URL")


def cmd_update_support_url(api, args, out):
    _update_version_url(api, args, out, "support_url", "support URL")


# ===== APP INFO =====


def cmd_app_info(api, args, out):
    app_info_id = api.primary_app_info_id()
    info = {
        "app_infos": api.app_info(),
        "localizations": api.app_info_localizations(app_info_id),
    }

    def render(data):
        out.heading("App Info")
        for app_info in data["app_infos"]:
            out.line(f"  {app_info['id']}: {out.state(app_info['state'])}")
        out.line()
        for loc in data["localizations"]:
            out.line(out.paint(f"{loc['locale']}:", BOLD))
            out.line(f"  Name: {_text_or_none(loc['name'])}")
            out.line(f"  Subtitle: {_text_or_none(loc['subtitle'])}")
            out.line(f"  Privacy Policy: {_text_or_none(loc['privacy_policy_url'])}")

    out.emit(info, render)


def cmd_age_rating(api, args, out):
    declaration = api.age_rating_declaration(api.primary_app_info_id())

    def render(data):
        out.heading("Age Rating Declaration")
        if not data:
            out.line("No age rating declaration found.")
            return
        for key, value in data.items():
            if key != "id":
                out.line(f"  {key.replace('_', ' ').title()}: {value}")

    out.emit(declaration, render)


def cmd_categories(api, args, out):
    categories = api.app_categories(api.primary_app_info_id())

    def render(data):
        out.heading("App Categories")
        for key in ("primary", "secondary"):
            category = data.get(key)
            out.line(f"  {key.title()}: {category['id'] if category else '(none)'}")

    out.emit(categories, render)


def cmd_update_app_name(api, args, out):
    name = " ".join(args.text).strip()
    api.update_app_name(name, args.locale)
    out.success(f"Updated app name ({args.locale}): {name}")


def cmd_update_subtitle(api, args, out):
    subtitle = " ".join(args.text).strip()
    api.update_app_subtitle(subtitle, args.locale)
    out.success(f"Updated subtitle ({args.locale}): {subtitle}")


def cmd_update_privacy_url(api, args, out):
    api.update_privacy_url(args.url, args.locale)
    out.success(f"Updated privacy policy URL ({args.locale}): {args.url}")


# ===== SCREENSHOTS =====


def cmd_screenshots(api, args, out):
    localization = _active_localization(api, args.locale)
    if localization is None:
        raise AppStoreConnectError(f"No editable version localization for {args.locale}")

    sets = []
    for screenshot_set in api.app_screenshot_sets(localization["id"]):
        sets.append(dict(screenshot_set, screenshots=api.app_screenshots(screenshot_set["id"])))

    def render(data):
        out.heading(f"Screenshots ({args.locale})")
        if not data:
            out.line("No screenshot sets found.")
        for screenshot_set in data:
            out.line(out.paint(f"{screenshot_set['screenshot_display_type']} ({screenshot_set['id']})", BOLD))
            for shot in screenshot_set["screenshots"]:
                out.line(f"  {shot['id']}: {shot['file_name']} [{out.state(shot['upload_state'])}]")

    out.emit(sets, render)


def cmd_upload_screenshot(api, args, out):
    result = api.upload_app_screenshot(args.set_id, args.file)
    out.success(f"Uploaded {args.file} (screenshot {result['data']['id']})")


def cmd_upload_screenshots(api, args, out):
    localization = _active_localization(api, args.locale)
    if localization is None:
        raise AppStoreConnectError(f"No editable version localization for {args.locale}")

    result = api.upload_screenshot_directory(localization["id"], args.directory)

    def render(data):
        for label in data["uploaded"]:
            out.line(f"  {out.paint('uploaded', GREEN)} {label}")
        for error in data["errors"]:
            out.line(f"  {out.paint('failed', RED)} {error}")
        out.line()
        out.line(f"{len(data['uploaded'])} uploaded, {len(data['errors'])} failed")

    out.emit(result, render)
    return 1 if result["errors"] else 0


def cmd_delete_screenshot(api, args, out):
    api.delete_app_screenshot(args.screenshot_id)
    out.success(f"Deleted screenshot {args.screenshot_id}")


def cmd_wait_screenshot(api, args, out):
    state = api.wait_for_screenshot(args.screenshot_id, timeout=args.timeout)
    out.emit(state, lambda data: out.success(f"Screenshot {args.screenshot_id}: {data.get('state')}"))


def cmd_upload_iap_screenshot(api, args, out):
    iap = api.find_in_app_purchase(args.product_id)
    api.upload_iap_review_screenshot(iap["id"], args.file)
    out.success(f"Uploaded review screenshot for {args.product_id}")


def cmd_delete_iap_screenshot(api, args, out):
    iap = api.find_in_app_purchase(args.product_id)
    screenshot = api.iap_review_screenshot(iap["id"])
    if screenshot is None:
        out.warn(f"No review screenshot for {args.product_id}")
        return
    api.delete_iap_review_screenshot(screenshot["id"])
    out.success(f"Deleted review screenshot {screenshot['file_name']} for {args.product_id}")


# ===== PRODUCTS =====


def cmd_iaps(api, args, out):
    def render(iaps):
        out.heading("In-App Purchases")
        if not iaps:
            out.line("No in-app purchases found.")
        for iap in iaps:
            out.line(f"  {iap['name']}: {out.state(iap['state'])} ({iap['type']})")
            out.line(f"    Product ID: {iap['product_id']}")

    out.emit(api.in_app_purchases(), render)


def cmd_subs(api, args, out):
    def render(subs):
        out.heading("Subscriptions")
        if not subs:
            out.line("No subscriptions found.")
        for sub in subs:
            out.line(f"  {sub['name']}: {out.state(sub['state'])} (Level {sub['group_level']})")
            out.line(f"    Product ID: {sub['product_id']}")

    out.emit(api.subscriptions(), render)


def cmd_iap_details(api, args, out):
    iaps = [
        dict(iap, localizations=api.in_app_purchase_localizations(iap["id"]))
        for iap in api.in_app_purchases()
    ]

    def render(rows):
        out.heading("In-App Purchase Details")
        if not rows:
            out.line("No in-app purchases found.")
        for iap in rows:
            out.line(f"{out.paint(iap['name'] or iap['product_id'], BOLD)} ({iap['type']})")
            out.line(f"  ID: {iap['id']}")
            out.line(f"  Product ID: {iap['product_id']}")
            out.line(f"  State: {out.state(iap['state'])}")
            out.line(f"  Review Note: {_text_or_none(iap['review_note'])}")
            for loc in iap["localizations"]:
                out.line(f"    {loc['locale']}: {loc['name']}")
                out.line(f"      Description: {_text_or_none(loc['description'])}")
            out.line()

    out.emit(iaps, render)


def cmd_update_iap_note(api, args, out):
    iap = api.find_in_app_purchase(args.product_id)
    api.update_in_app_purchase(iap["id"], review_note=" ".join(args.text).strip())
    out.success(f"Updated review note for {args.product_id}")


def cmd_update_iap_description(api, args, out):
    iap = api.find_in_app_purchase(args.product_id)
    description = " ".join(args.text).strip()
    for loc in api.in_app_purchase_localizations(iap["id"]):
        if loc["locale"] == args.locale:
            api.update_in_app_purchase_localization(loc["id"], description=description)
            break
    else:
        api.create_in_app_purchase_localization(
            iap["id"], args.locale, iap["name"] or args.product_id, description
        )
    out.success(f"Updated description for {args.product_id} ({args.locale})")


def cmd_submit_iap(api, args, out):
    iap = api.find_in_app_purchase(args.product_id)
    api.submit_in_app_purchase(iap["id"])
    out.success(f"Submitted {args.product_id} for review")


# ===== SUBSCRIPTIONS =====


def cmd_sub_details(api, args, out):
    subs = [
        dict(sub, localizations=api.subscription_localizations(sub["id"]))
        for sub in api.subscriptions()
    ]

    def render(rows):
        out.heading("Subscription Details")
        if not rows:
            out.line("No subscriptions found.")
        for sub in rows:
            out.line(out.paint(sub["name"] or sub["product_id"], BOLD))
            out.line(f"  ID: {sub['id']}")
            out.line(f"  Product ID: {sub['product_id']}")
            out.line(f"  State: {out.state(sub['state'])}")
            out.line(f"  Period: {sub['subscription_period']}  Level: {sub['group_level']}")
            out.line(f"  Review Note: {_text_or_none(sub['review_note'])}")
            for loc in sub["localizations"]:
                out.line(f"    {loc['locale']}: {loc['name']}")
                out.line(f"      Description: {_text_or_none(loc['description'])}")
            out.line()

    out.emit(subs, render)


def cmd_sub_localizations(api, args, out):
    sub = api.find_subscription(args.product_id)

    def render(locs):
        out.heading(f"Subscription Localizations ({args.product_id})")
        if not locs:
            out.line("No localizations found.")
        for loc in locs:
            out.line(f"  {loc['locale']}: {loc['name']} [{out.state(loc['state'])}]")
            out.line(f"    ID: {loc['id']}")
            out.line(f"    Description: {_text_or_none(loc['description'])}")

    out.emit(api.subscription_localizations(sub["id"]), render)


def _upsert_subscription_localization(
    api, sub: Dict[str, Any], locale: str, name: Optional[str], description: Optional[str]
) -> str:
    for loc in api.subscription_localizations(sub["id"]):
        if loc["locale"] == locale:
            api.update_subscription_localization(loc["id"], name=name, description=description)
            return "Updated"
    api.create_subscription_localization(
        sub["id"], locale, name or sub["name"] or sub["product_id"], description
    )
    return "Created"


def cmd_update_sub_localization(api, args, out):
    if args.name is None and args.description is None:
        raise ValidationError("Pass --name or --description")
    sub = api.find_subscription(args.product_id)
    action = _upsert_subscription_localization(api, sub, args.locale, args.name, args.description)
    out.success(f"{action} {args.locale} localization for {args.product_id}")


def cmd_update_sub_description(api, args, out):
    sub = api.find_subscription(args.product_id)
    description = " ".join(args.text).strip()
    action = _upsert_subscription_localization(api, sub, args.locale, None, description)
    out.success(f"{action} description for {args.product_id} ({args.locale})")


def cmd_update_sub_note(api, args, out):
    sub = api.find_subscription(args.product_id)
    api.update_subscription(sub["id"], review_note=" ".join(args.text).strip())
    out.success(f"Updated review note for {args.product_id}")


def _render_assets(out: Output, title: str) -> Callable[[Any], None]:
    def render(assets):
        out.heading(title)
        if not assets:
            out.line("None uploaded.")
            return
        for asset in assets if isinstance(assets, list) else [assets]:
            out.line(f"  {asset['id']}: {asset['file_name']} [{out.state(asset['upload_state'])}]")

    return render


def cmd_sub_image(api, args, out):
    sub = api.find_subscription(args.product_id)
    out.emit(api.subscription_images(sub["id"]), _render_assets(out, "Subscription Images"))


def cmd_upload_sub_image(api, args, out):
    sub = api.find_subscription(args.product_id)
    result = api.upload_subscription_image(sub["id"], args.file)
    out.success(f"Uploaded {args.file} (image {result['data']['id']})")


def cmd_delete_sub_image(api, args, out):
    api.delete_subscription_image(args.image_id)
    out.success(f"Deleted subscription image {args.image_id}")


def cmd_sub_review_screenshot(api, args, out):
    sub = api.find_subscription(args.product_id)
    out.emit(
        api.subscription_review_screenshot(sub["id"]),
        _render_assets(out, "Subscription Review Screenshot"),
    )


def cmd_upload_sub_review_screenshot(api, args, out):
    sub = api.find_subscription(args.product_id)
    api.upload_subscription_review_screenshot(sub["id"], args.file)
    out.success(f"Uploaded review screenshot for {args.product_id}")


def cmd_delete_sub_review_screenshot(api, args, out):
    sub = api.find_subscription(args.product_id)
    screenshot = api.subscription_review_screenshot(sub["id"])
    if screenshot is None:
        out.warn(f"No review screenshot for {args.product_id}")
        return
    api.delete_subscription_review_screenshot(screenshot["id"])
    out.success(f"Deleted review screenshot for {args.product_id}")


def cmd_sub_price_points(api, args, out):
    sub = api.find_subscription(args.product_id)

    def render(points):
        out.heading(f"Price Points ({args.territory})")
        for point in points:
            out.line(f"  {point['id']}: {point['customer_price']} (proceeds {point['proceeds']})")

    out.emit(api.subscription_price_points(sub["id"], territory=args.territory), render)


def cmd_sub_prices(api, args, out):
    sub = api.find_subscription(args.product_id)

    def render(prices):
        out.heading(f"Subscription Prices ({args.product_id})")
        if not prices:
            out.line("No prices set.")
        for price in prices:
            out.line(f"  {price['customer_price']} from {price['start_date'] or 'now'} ({price['price_point_id']})")

    out.emit(api.subscription_prices(sub["id"]), render)


def cmd_add_sub_price(api, args, out):
    sub = api.find_subscription(args.product_id)
    api.create_subscription_price(sub["id"], args.price_point_id, start_date=args.start_date)
    out.success(f"Added price {args.price_point_id} to {args.product_id}")


def cmd_sub_intro_offers(api, args, out):
    sub = api.find_subscription(args.product_id)

    def render(offers):
        out.heading(f"Introductory Offers ({args.product_id})")
        if not offers:
            out.line("No introductory offers.")
        for offer in offers:
            out.line(
                f"  {offer['id']}: {offer['offer_mode']} {offer['duration']}"
                f" x{offer['number_of_periods']} ({offer['territory'] or 'all territories'})"
            )

    out.emit(api.subscription_introductory_offers(sub["id"]), render)


def cmd_delete_sub_intro_offer(api, args, out):
    api.delete_subscription_introductory_offer(args.offer_id)
    out.success(f"Deleted introductory offer {args.offer_id}")


def cmd_sub_availability(api, args, out):
    sub = api.find_subscription(args.product_id)

    def render(availability):
        out.heading(f"Subscription Availability ({args.product_id})")
        if not availability:
            out.line("Availability not set.")
            return
        out.line(f"  Available in new territories: {availability['available_in_new_territories']}")
        out.line(f"  Territories ({len(availability['territories'])}): {', '.join(availability['territories'])}")

    out.emit(api.subscription_availability(sub["id"]), render)


def cmd_set_sub_availability(api, args, out):
    sub = api.find_subscription(args.product_id)
    territories = [territory.upper() for territory in args.territories]
    api.set_subscription_availability(
        sub["id"], territories, available_in_new_territories=args.available_in_new_territories
    )
    out.success(f"{args.product_id} available in {len(territories)} territories")


def _offer_mode(value: str) -> str:
    return re.sub(r"[\s-]+", "_", value.strip().upper())


def _subscription_period(value: str) -> str:
    period = normalize_subscription_period(value)
    if period is None:
        raise argparse.ArgumentTypeError(
            f"invalid period {value!r} (expected one of {', '.join(SUBSCRIPTION_PERIODS)})"
        )
    return period


def _add_subscription_metadata(api, out, sub: Dict[str, Any], args) -> Dict[str, Any]:
    """Missing localization, price and intro offer; each failure is reported and skipped."""
    result: Dict[str, Any] = {"localization": None, "price": None, "introductory_offer": None}

    if args.display_name or args.description:
        existing = {loc["locale"].lower() for loc in api.subscription_localizations(sub["id"])}
        if args.locale.lower() in existing:
            out.line(f"  Skip localization {args.locale} (already exists)")
        else:
            try:
                created = api.create_subscription_localization(
                    sub["id"],
                    args.locale,
                    args.display_name or sub["name"],
                    args.description,
                )
                result["localization"] = {"locale": args.locale, "id": created["data"]["id"]}
            except AppStoreConnectError as e:
                out.warn(f"Localization {args.locale} failed: {e}")

    price_point_id = args.price_point
    if price_point_id and args.price_territory:
        try:
            points = api.subscription_price_points(sub["id"], territory=args.price_territory)
            if price_point_id not in {point["id"] for point in points}:
                out.warn(f"Price point {price_point_id} not found for {args.price_territory}; skipping price")
                price_point_id = None
        except AppStoreConnectError as e:
            out.warn(f"Could not validate price point: {e}")
    if price_point_id:
        try:
            api.create_subscription_price(sub["id"], price_point_id, start_date=args.price_start_date)
            result["price"] = {"price_point_id": price_point_id, "start_date": args.price_start_date}
        except AppStoreConnectError as e:
            out.warn(f"Price creation failed: {e}")

    if args.intro_offer:
        try:
            result["introductory_offer"] = api.create_subscription_introductory_offer(
                sub["id"],
                args.intro_offer,
                args.intro_duration,
                subscription_price_point_id=args.intro_price_point,
            )
        except AppStoreConnectError as e:
            out.warn(f"Intro offer failed: {e}")

    return result


def _find_or_create_group(api, out, group: Optional[str], dry_run: bool) -> Optional[Dict[str, Any]]:
    groups = api.subscription_groups()
    if group is None:
        if len(groups) == 1:
            return groups[0]
        names = ", ".join(g["reference_name"] or g["id"] for g in groups) or "none"
        raise ValidationError(f"Pass --group to choose a subscription group (existing: {names})")
    for candidate in groups:
        if group in (candidate["id"], candidate["reference_name"]):
            return candidate
    if dry_run:
        return {"id": None, "reference_name": group}
    out.line(f"Creating subscription group {group}")
    return api.create_subscription_group(group)


def cmd_create_sub(api, args, out):
    if args.intro_offer and not args.intro_duration:
        raise ValidationError("--intro-offer needs --intro-duration")
    group = _find_or_create_group(api, out, args.group, args.dry_run)
    plan = {
        "product_id": args.product_id,
        "name": args.name,
        "period": args.period,
        "group": group,
        "group_level": args.level,
        "family_sharable": args.family_sharable,
    }
    if args.dry_run:
        out.emit(plan, lambda data: out.line(f"Would create {data['product_id']} in group {data['group']['reference_name']}"))
        return
    if not _confirm(args, f"Create subscription {args.product_id}?"):
        out.line("Cancelled.")
        return

    sub = api.create_subscription(
        group["id"],
        args.name,
        args.product_id,
        args.period,
        family_sharable=args.family_sharable,
        review_note=args.review_note,
        group_level=args.level,
    )
    result = dict(_add_subscription_metadata(api, out, sub, args), subscription=sub)
    out.emit(result, lambda data: out.success(f"Created subscription {args.product_id} ({sub['id']})"))


def cmd_fix_sub_metadata(api, args, out):
    if args.intro_offer and not args.intro_duration:
        raise ValidationError("--intro-offer needs --intro-duration")
    sub = api.find_subscription(args.product_id)
    if args.dry_run:
        plan = {
            "subscription_id": sub["id"],
            "locale": args.locale if args.display_name or args.description else None,
            "price_point": args.price_point,
            "intro_offer": args.intro_offer,
        }
        out.emit(plan, lambda data: out.line(f"Would update metadata of {args.product_id}: {data}"))
        return
    if not _confirm(args, f"Add missing metadata to {args.product_id}?"):
        out.line("Cancelled.")
        return
    result = dict(_add_subscription_metadata(api, out, sub, args), subscription=sub)
    out.emit(result, lambda data: out.success(f"Metadata updated for {args.product_id}"))


def cmd_delete_sub(api, args, out):
    sub = api.find_subscription(args.product_id)
    if not _confirm(args, f"Delete subscription {args.product_id} ({out.state(sub['state'])})?"):
        out.line("Cancelled.")
        return
    try:
        api.delete_subscription(sub["id"])
    except PermissionError as e:
        raise AppStoreConnectError(
            f"{e} (only subscriptions never submitted for review can be deleted)"
        )
    out.success(f"Subscription deleted: {args.product_id}")


# ===== CUSTOMER REVIEWS =====


def cmd_customer_reviews(api, args, out):
    def render(reviews):
        out.heading("Customer Reviews")
        for review in reviews:
            stars = "*" * (review["rating"] or 0)
            out.line(f"{stars} {review['title']} ({review['reviewer_nickname']}, {review['territory']})")
            out.line(f"  {review['body']}")
            out.line(f"  ID: {review['id']}")
            out.line()

    out.emit(api.customer_reviews(limit=args.limit), render)


def cmd_respond_review(api, args, out):
    response = api.create_customer_review_response(args.review_id, " ".join(args.text))
    out.emit(response, lambda data: out.success(f"Response submitted ({data['state']})"))


# ===== TESTFLIGHT =====


def cmd_testers(api, args, out):
    def render(testers):
        out.heading("Beta Testers")
        for tester in testers:
            name = " ".join(filter(None, [tester["first_name"], tester["last_name"]]))
            out.line(f"  {tester['email']} {name} [{tester['invite_type']}]")

    out.emit(api.beta_testers(), render)


def cmd_tester_groups(api, args, out):
    def render(groups):
        out.heading("Beta Groups")
        for group in groups:
            kind = "internal" if group["is_internal"] else "external"
            out.line(f"  {group['name']} ({kind}) - {group['id']}")

    out.emit(api.beta_groups(), render)


def cmd_testflight_builds(api, args, out):
    def render(builds):
        out.heading("TestFlight Builds")
        for build in builds:
            expired = " (expired)" if build["expired"] else ""
            out.line(f"  {build['version']}: {out.state(build['processing_state'])}{expired}")
            out.line(f"    ID: {build['id']}  Uploaded: {build['uploaded_date']}")

    out.emit(api.testflight_builds(limit=args.limit), render)


def cmd_distribute_build(api, args, out):
    api.add_build_to_groups(args.build_id, args.group_ids)
    out.success(f"Build {args.build_id} added to {len(args.group_ids)} group(s)")


def cmd_remove_build(api, args, out):
    api.remove_build_from_groups(args.build_id, args.group_ids)
    out.success(f"Build {args.build_id} removed from {len(args.group_ids)} group(s)")


def cmd_add_tester(api, args, out):
    tester = api.create_beta_tester(
        args.email,
        first_name=args.first_name,
        last_name=args.last_name,
        group_ids=args.group_ids,
    )
    out.emit(tester, lambda data: out.success(f"Invited tester {data['email']} ({data['id']})"))


def cmd_remove_tester(api, args, out):
    if not _confirm(args, f"Remove tester {args.tester_id} from all apps and groups?"):
        out.line("Cancelled.")
        return
    api.delete_beta_tester(args.tester_id)
    out.success(f"Removed tester {args.tester_id}")


def cmd_create_group(api, args, out):
    group = api.create_beta_group(
        args.name,
        public_link_enabled=args.public,
        public_link_limit=args.limit,
        public_link_limit_enabled=args.limit is not None,
    )

    def render(data):
        out.success(f"Created beta group {data['name']} ({data['id']})")
        if data["public_link"]:
            out.line(f"  Public link: {data['public_link']}")

    out.emit(group, render)


def cmd_delete_group(api, args, out):
    if not _confirm(args, f"Delete beta group {args.group_id}?"):
        out.line("Cancelled.")
        return
    api.delete_beta_group(args.group_id)
    out.success(f"Deleted beta group {args.group_id}")


def cmd_group_testers(api, args, out):
    def render(testers):
        out.heading("Group Testers")
        if not testers:
            out.line("No testers in this group.")
        for tester in testers:
            name = " ".join(filter(None, [tester["first_name"], tester["last_name"]]))
            out.line(f"  {tester['email']} {name} ({tester['id']})")

    out.emit(api.beta_group_testers(args.group_id), render)


def cmd_add_to_group(api, args, out):
    api.add_testers_to_group(args.group_id, args.tester_ids)
    out.success(f"Added {len(args.tester_ids)} tester(s) to group {args.group_id}")


def cmd_remove_from_group(api, args, out):
    api.remove_testers_from_group(args.group_id, args.tester_ids)
    out.success(f"Removed {len(args.tester_ids)} tester(s) from group {args.group_id}")


def cmd_beta_whats_new(api, args, out):
    def render(locs):
        out.heading("Beta Build What's New")
        if not locs:
            out.line("No What's New text set for this build.")
        for loc in locs:
            out.line(out.paint(f"{loc['locale']}:", BOLD))
            out.line(f"  {loc['whats_new'] or '(no text)'}")

    out.emit(api.beta_build_localizations(args.build_id), render)


def cmd_update_beta_whats_new(api, args, out):
    text = " ".join(args.text).strip()
    for loc in api.beta_build_localizations(args.build_id):
        if loc["locale"] == args.locale:
            api.update_beta_build_localization(loc["id"], text)
            break
    else:
        api.create_beta_build_localization(args.build_id, args.locale, text)
    out.success(f"Updated What's New for build {args.build_id} ({args.locale})")


def cmd_submit_beta_review(api, args, out):
    existing = api.beta_app_review_submission(args.build_id)
    if existing:
        out.warn(f"Build {args.build_id} already submitted ({existing['beta_review_state']})")
        return
    api.submit_for_beta_review(args.build_id)
    out.success(f"Build {args.build_id} submitted for beta review")


def cmd_beta_review_status(api, args, out):
    def render(submission):
        out.heading("Beta Review Status")
        out.line(f"Build: {args.build_id}")
        if not submission:
            out.line("Not submitted for beta review.")
            return
        out.line(f"State: {out.state(submission['beta_review_state'])}")
        out.line(f"Submitted: {submission['submitted_date'] or 'N/A'}")

    out.emit(api.beta_app_review_submission(args.build_id), render)


# ===== RELEASES =====


def _require_active_phased_release(api) -> Dict[str, Any]:
    phased = api.active_phased_release()
    if phased is None:
        raise AppStoreConnectError("No phased release found for the current version")
    return phased


def cmd_phased_release(api, args, out):
    def render(phased):
        out.heading("Phased Release")
        if not phased:
            out.line("No phased release found for current version.")
            return
        out.line(f"  State: {out.state(phased['state'])}")
        out.line(f"  Day: {phased['current_day_number']} of 7")
        out.line(f"  Started: {phased['start_date']}")

    out.emit(api.active_phased_release(), render)


def _set_phased_state(api, out, state: str, message: str) -> None:
    phased = _require_active_phased_release(api)
    api.update_phased_release(phased["id"], state)
    out.success(message)


def cmd_pause_release(api, args, out):
    _set_phased_state(api, out, "PAUSED", "Phased release paused")


def cmd_resume_release(api, args, out):
    _set_phased_state(api, out, "ACTIVE", "Phased release resumed")


def cmd_complete_release(api, args, out):
    _set_phased_state(api, out, "COMPLETE", "Phased release completed: available to all users")


def cmd_create_version(api, args, out):
    version = api.create_app_store_version(
        args.version,
        platform=args.platform,
        release_type=args.release_type,
        earliest_release_date=args.release_date,
    )
    out.emit(version, lambda data: out.success(f"Created version {data['version_string']} ({data['id']})"))


def cmd_release(api, args, out):
    api.release_version(args.version_id)
    out.success(f"Version {args.version_id} released")


def cmd_enable_phased_release(api, args, out):
    version = _require_version(api, "PREPARE_FOR_SUBMISSION")
    label = _version_string(version)
    existing = api.phased_release(version["id"])
    if existing:
        out.warn(f"Phased release already enabled for version {label} ({existing['state']})")
        return
    result = api.create_phased_release(version["id"])
    out.success(f"Phased release {result['id']} enabled for version {label}")


def cmd_pre_order(api, args, out):
    def render(order):
        out.heading("Pre-Order Status")
        if not order:
            out.line("Pre-order is not enabled for this app.")
            return
        out.line(f"  Release Date: {order['app_release_date']}")
        out.line(f"  Available Since: {order['pre_order_available_date'] or 'N/A'}")

    out.emit(api.pre_order(), render)


def _release_date(value: str) -> str:
    if not re.match(r"^\d{4}-\d{2}-\d{2}$", value):
        raise argparse.ArgumentTypeError(f"invalid date {value!r} (expected YYYY-MM-DD)")
    return value


def cmd_enable_pre_order(api, args, out):
    existing = api.pre_order()
    if existing:
        api.update_pre_order(existing["id"], args.release_date)
        out.success(f"Pre-order release date moved to {args.release_date}")
        return
    api.create_pre_order(args.release_date)
    out.success(f"Pre-order enabled for {args.release_date}")


def cmd_cancel_pre_order(api, args, out):
    order = api.pre_order()
    if order is None:
        out.warn("Pre-order is not enabled for this app.")
        return
    if not _confirm(args, f"Cancel pre-order for {order['app_release_date']}?"):
        out.line("Cancelled.")
        return
    api.delete_pre_order(order["id"])
    out.success("Pre-order cancelled")


# ===== PRICING & AVAILABILITY =====


def cmd_territories(api, args, out):
    def render(territories):
        out.heading("Territories")
        for territory in territories:
            out.line(f"  {territory['id']} ({territory['currency']})")

    out.emit(api.territories(), render)


def cmd_availability(api, args, out):
    def render(availability):
        out.heading("App Availability")
        if not availability:
            out.line("No availability configured.")
            return
        out.line(f"  Available in new territories: {availability['available_in_new_territories']}")
        out.line(f"  Territories: {len(availability['territories'])}")
        out.line("  " + ", ".join(t["id"] for t in availability["territories"]))

    out.emit(api.app_availability(), render)


def cmd_pricing(api, args, out):
    def render(schedule):
        out.heading("App Pricing")
        if not schedule:
            out.line("No price schedule found.")
            return
        out.line(f"  Base territory currency: {schedule['base_territory']}")
        for price in schedule["manual_prices"]:
            out.line(f"  {price['id']}: {price['start_date'] or 'now'} - {price['end_date'] or 'open'}")

    out.emit(api.app_price_schedule(), render)


# ===== USERS =====


def cmd_users(api, args, out):
    def render(users):
        out.heading("Team Users")
        for user in users:
            out.line(f"  {user['first_name']} {user['last_name']} <{user['username']}>")
            out.line(f"    Roles: {', '.join(user['roles'] or [])}")

    out.emit(api.users(), render)


def cmd_invitations(api, args, out):
    def render(invitations):
        out.heading("Pending Invitations")
        if not invitations:
            out.line("No pending invitations.")
        for invite in invitations:
            out.line(f"  {invite['email']} ({', '.join(invite['roles'] or [])})")
            out.line(f"    Expires: {invite['expiration_date']}")

    out.emit(api.user_invitations(), render)


def cmd_invite_user(api, args, out):
    invitation = api.create_user_invitation(
        args.email,
        args.first_name,
        args.last_name,
        [role.upper() for role in args.roles],
        all_apps_visible=not args.app_ids,
        visible_app_ids=args.app_ids,
    )
    out.emit(invitation, lambda data: out.success(f"Invited {data['email']} ({', '.join(data['roles'] or [])})"))


def cmd_remove_user(api, args, out):
    if not _confirm(args, f"Remove user {args.user_id} from the team?"):
        out.line("Cancelled.")
        return
    api.delete_user(args.user_id)
    out.success(f"Removed user {args.user_id}")


def cmd_cancel_invitation(api, args, out):
    api.delete_user_invitation(args.invitation_id)
    out.success(f"Cancelled invitation {args.invitation_id}")


# ===== PRIVACY =====


def _render_reference(title: str, out: Output, key: str) -> Callable[[List[Dict]], None]:
    def render(rows):
        out.heading(title)
        for row in rows:
            out.line(f"  {row['id']}: {row['name']} ({row[key]})")

    return render


def cmd_privacy_types(api, args, out):
    out.emit(api.privacy_data_types(), _render_reference("Privacy Data Types", out, "category"))


def cmd_privacy_purposes(api, args, out):
    out.emit(api.privacy_purposes(), _render_reference("Privacy Purposes", out, "description"))


def cmd_privacy_labels(api, args, out):
    def render(levels):
        _render_reference("Privacy Labels", out, "description")(levels)
        out.line()
        out.warn("Privacy declarations can only be edited in the App Store Connect web UI.")

    out.emit(api.privacy_protection_levels(), render)


# ===== PARSER =====


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="asc",
        description="App Store Connect command-line tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Credentials are read from APP_STORE_CONNECT_KEY_ID, "
        "APP_STORE_CONNECT_ISSUER_ID and APP_STORE_CONNECT_PRIVATE_KEY_PATH.",
    )
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    parser.add_argument("--quiet", action="store_true", help="Only print results and errors")
    parser.add_argument("--verbose", action="store_true", help="Log HTTP requests")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    def add(name: str, handler: Callable, help_text: str, aliases=()) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text, aliases=list(aliases))
        sub.set_defaults(handler=handler)
        return sub

    def with_text(sub: argparse.ArgumentParser) -> argparse.ArgumentParser:
        sub.add_argument("text", nargs="+", help="New text")
        sub.add_argument("--locale", default="en-US")
        return sub

    def with_yes(sub: argparse.ArgumentParser) -> argparse.ArgumentParser:
        sub.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation prompt")
        return sub

    def with_metadata(sub: argparse.ArgumentParser) -> argparse.ArgumentParser:
        sub.add_argument("--locale", default="en-US")
        sub.add_argument("--display-name", help="Localized display name")
        sub.add_argument("--description", help="Localized description")
        sub.add_argument("--price-point", help="Subscription price point id")
        sub.add_argument("--price-territory", help="Check the price point exists in this territory")
        sub.add_argument("--price-start-date", type=_release_date)
        sub.add_argument("--intro-offer", type=_offer_mode, choices=INTRO_OFFER_MODES)
        sub.add_argument("--intro-duration", type=_subscription_period)
        sub.add_argument("--intro-price-point", help="Price point of a paid intro offer")
        sub.add_argument("--dry-run", action="store_true", help="Show the plan without changing anything")
        return with_yes(sub)

    add("help", None, "Show this help")
    add("status", cmd_status, "Full app status summary")
    add("apps", cmd_apps, "List all apps")
    add("builds", cmd_builds, "List recent builds").add_argument("--limit", type=int, default=10)
    add("review", cmd_review, "Review submission status").add_argument("--limit", type=int, default=10)
    add("ready", cmd_ready, "Check if ready for submission")
    add("rejection", cmd_rejection, "Rejection details and Resolution Center messages")

    session = add("session", cmd_session, "Show, save or clear the web session")
    session.add_argument("action", nargs="?", choices=("status", "save", "clear"), default="status")
    session.add_argument("data", nargs="?", help="FASTLANE_SESSION value for 'save'")

    add("review-info", cmd_review_info, "Show App Review contact, demo account and notes")
    add("update-review-notes", cmd_update_review_notes, "Set notes for the reviewer").add_argument(
        "text", nargs="+"
    )
    contact = add("update-review-contact", cmd_update_review_contact, "Set the App Review contact")
    contact.add_argument("--first-name")
    contact.add_argument("--last-name")
    contact.add_argument("--email")
    contact.add_argument("--phone")
    demo = add("update-demo-account", cmd_update_demo_account, "Set the App Review demo account")
    demo.add_argument("--username")
    demo.add_argument("--password")
    required = demo.add_mutually_exclusive_group()
    required.add_argument("--required", dest="required", action="store_const", const=True)
    required.add_argument("--not-required", dest="required", action="store_const", const=False)
    detail = add("create-review-detail", cmd_create_review_detail, "Create the App Review detail")
    detail.add_argument("--notes")
    detail.add_argument("--email")
    detail.add_argument("--demo-user")
    detail.add_argument("--demo-pass")
    with_yes(add("submit", cmd_submit, "Submit the ready version for review")).add_argument(
        "--platform", default="IOS"
    )
    with_yes(add("cancel-review", cmd_cancel_review, "Cancel a pending review submission")).add_argument(
        "--limit", type=int, default=10
    )
    add("content-rights", cmd_content_rights, "Show the content rights declaration")
    add("set-content-rights", cmd_set_content_rights, "Declare third-party content use").add_argument(
        "answer", type=str.lower, choices=("yes", "no", "true", "false", "1", "0")
    )

    add("version-info", cmd_version_info, "Show version localizations")
    add("description", cmd_description, "Show app description").add_argument(
        "locale", nargs="?", default="en-US"
    )
    add("keywords", cmd_keywords, "Show keywords").add_argument("locale", nargs="?", default="en-US")
    with_text(add("update-description", cmd_update_description, "Update app description"))
    with_text(add("update-keywords", cmd_update_keywords, "Update keywords"))
    with_text(add("update-whats-new", cmd_update_whats_new, "Update \"What's New\" text"))
    with_text(add("update-promotional-text", cmd_update_promotional_text, "Update promotional text"))
    add("urls", cmd_urls, "Show marketing and support URLs").add_argument("locale", nargs="?")
    for name, handler, help_text in (
        ("update-marketing-url", cmd_update_marketing_url, "Update the marketing URL"),
        ("update-support-url", cmd_update_support_url, "Update the support URL"),
        ("update-privacy-url", cmd_update_privacy_url, "Update the privacy policy URL"),
    ):
        url = add(name, handler, help_text)
        url.add_argument("url")
        url.add_argument("--locale", default="en-US")

    add("app-info", cmd_app_info, "Show app info and localizations")
    add("age-rating", cmd_age_rating, "Show age rating declaration")
    add("categories", cmd_categories, "Show app categories")
    with_text(add("update-app-name", cmd_update_app_name, "Update the app name"))
    with_text(add("update-subtitle", cmd_update_subtitle, "Update the app subtitle"))

    add("screenshots", cmd_screenshots, "List screenshot sets").add_argument("--locale", default="en-US")
    upload = add("upload-screenshot", cmd_upload_screenshot, "Upload one screenshot")
    upload.add_argument("set_id")
    upload.add_argument("file")
    upload_dir = add("upload-screenshots", cmd_upload_screenshots, "Upload a screenshot directory")
    upload_dir.add_argument("directory", help=f"Contains {', '.join(DISPLAY_TYPES)} subdirectories")
    upload_dir.add_argument("--locale", default="en-US")
    add("delete-screenshot", cmd_delete_screenshot, "Delete a screenshot").add_argument("screenshot_id")
    wait = add("wait-screenshot", cmd_wait_screenshot, "Wait for screenshot processing")
    wait.add_argument("screenshot_id")
    wait.add_argument("--timeout", type=float, default=300.0)
    iap_shot = add("upload-iap-screenshot", cmd_upload_iap_screenshot, "Upload IAP review screenshot")
    iap_shot.add_argument("product_id")
    iap_shot.add_argument("file")
    add("delete-iap-screenshot", cmd_delete_iap_screenshot, "Delete IAP review screenshot").add_argument(
        "product_id"
    )

    add("iaps", cmd_iaps, "List in-app purchases")
    add("iap-details", cmd_iap_details, "In-app purchases with localizations")
    iap_note = add("update-iap-note", cmd_update_iap_note, "Set an IAP review note")
    iap_note.add_argument("product_id")
    iap_note.add_argument("text", nargs="+")
    iap_description = add("update-iap-description", cmd_update_iap_description, "Set an IAP description")
    iap_description.add_argument("product_id")
    with_text(iap_description)
    add("submit-iap", cmd_submit_iap, "Submit an IAP for review").add_argument("product_id")

    add("subs", cmd_subs, "List subscription products", aliases=("subscriptions",))
    add("sub-details", cmd_sub_details, "Subscriptions with localizations")
    add("sub-localizations", cmd_sub_localizations, "List a subscription's localizations").add_argument(
        "product_id"
    )
    sub_loc = add("update-sub-localization", cmd_update_sub_localization, "Set a subscription display name or description")
    sub_loc.add_argument("product_id")
    sub_loc.add_argument("--locale", default="en-US")
    sub_loc.add_argument("--name")
    sub_loc.add_argument("--description")
    sub_description = add("update-sub-description", cmd_update_sub_description, "Set a subscription description")
    sub_description.add_argument("product_id")
    with_text(sub_description)
    sub_note = add("update-sub-note", cmd_update_sub_note, "Set a subscription review note")
    sub_note.add_argument("product_id")
    sub_note.add_argument("text", nargs="+")
    add("sub-image", cmd_sub_image, "List subscription promotional images").add_argument("product_id")
    sub_image = add("upload-sub-image", cmd_upload_sub_image, "Upload a subscription promotional image")
    sub_image.add_argument("product_id")
    sub_image.add_argument("file")
    add("delete-sub-image", cmd_delete_sub_image, "Delete a subscription image").add_argument("image_id")
    add("sub-review-screenshot", cmd_sub_review_screenshot, "Show a subscription review screenshot").add_argument(
        "product_id"
    )
    sub_shot = add("upload-sub-review-screenshot", cmd_upload_sub_review_screenshot, "Upload a subscription review screenshot")
    sub_shot.add_argument("product_id")
    sub_shot.add_argument("file")
    add(
        "delete-sub-review-screenshot",
        cmd_delete_sub_review_screenshot,
        "Delete a subscription review screenshot",
    ).add_argument("product_id")
    points = add("sub-price-points", cmd_sub_price_points, "List subscription price points")
    points.add_argument("product_id")
    points.add_argument("--territory", default="USA")
    add("sub-prices", cmd_sub_prices, "List subscription prices").add_argument("product_id")
    sub_price = add("add-sub-price", cmd_add_sub_price, "Schedule a subscription price")
    sub_price.add_argument("product_id")
    sub_price.add_argument("price_point_id")
    sub_price.add_argument("--start-date", type=_release_date)
    add("sub-intro-offers", cmd_sub_intro_offers, "List introductory offers").add_argument("product_id")
    add("delete-sub-intro-offer", cmd_delete_sub_intro_offer, "Delete an introductory offer").add_argument(
        "offer_id"
    )
    add("sub-availability", cmd_sub_availability, "Show subscription territories").add_argument(
        "product_id"
    )
    sub_availability = add("set-sub-availability", cmd_set_sub_availability, "Set subscription territories")
    sub_availability.add_argument("product_id")
    sub_availability.add_argument("territories", nargs="+")
    sub_availability.add_argument("--available-in-new-territories", action="store_true")
    create_sub = with_metadata(
        add("create-sub", cmd_create_sub, "Create a subscription", aliases=("create-subscription",))
    )
    create_sub.add_argument("product_id")
    create_sub.add_argument("name", help="Reference name")
    create_sub.add_argument("--period", type=_subscription_period, default="ONE_MONTH")
    create_sub.add_argument("--group", help="Subscription group id or reference name")
    create_sub.add_argument("--level", type=int, help="Rank within the group")
    create_sub.add_argument("--review-note")
    create_sub.add_argument("--family-sharable", action="store_true")
    with_metadata(add("fix-sub-metadata", cmd_fix_sub_metadata, "Add missing subscription metadata")).add_argument(
        "product_id"
    )
    with_yes(add("delete-sub", cmd_delete_sub, "Delete a never-submitted subscription")).add_argument(
        "product_id"
    )
    add("customer-reviews", cmd_customer_reviews, "List customer reviews").add_argument(
        "--limit", type=int, default=20
    )
    respond = add("respond-review", cmd_respond_review, "Respond to a customer review")
    respond.add_argument("review_id")
    respond.add_argument("text", nargs="+")

    add("testers", cmd_testers, "List beta testers")
    add("tester-groups", cmd_tester_groups, "List beta groups")
    add("testflight-builds", cmd_testflight_builds, "List TestFlight builds").add_argument(
        "--limit", type=int, default=20
    )
    distribute = add("distribute-build", cmd_distribute_build, "Add a build to beta groups")
    distribute.add_argument("build_id")
    distribute.add_argument("group_ids", nargs="+")
    remove_build = add("remove-build", cmd_remove_build, "Remove a build from beta groups")
    remove_build.add_argument("build_id")
    remove_build.add_argument("group_ids", nargs="+")
    tester = add("add-tester", cmd_add_tester, "Invite a beta tester")
    tester.add_argument("email")
    tester.add_argument("--first-name")
    tester.add_argument("--last-name")
    tester.add_argument("--group", dest="group_ids", action="append", default=[], help="Beta group id (repeatable)")
    with_yes(add("remove-tester", cmd_remove_tester, "Delete a beta tester")).add_argument("tester_id")
    group = add("create-group", cmd_create_group, "Create a beta group")
    group.add_argument("name")
    group.add_argument("--public", action="store_true", help="Enable the public link")
    group.add_argument("--limit", type=int, help="Public link tester limit")
    with_yes(add("delete-group", cmd_delete_group, "Delete a beta group")).add_argument("group_id")
    add("group-testers", cmd_group_testers, "List testers in a beta group").add_argument("group_id")
    for name, handler, help_text in (
        ("add-to-group", cmd_add_to_group, "Add testers to a beta group"),
        ("remove-from-group", cmd_remove_from_group, "Remove testers from a beta group"),
    ):
        membership = add(name, handler, help_text)
        membership.add_argument("group_id")
        membership.add_argument("tester_ids", nargs="+")
    add("beta-whats-new", cmd_beta_whats_new, "Show a build's TestFlight notes").add_argument("build_id")
    beta_notes = add("update-beta-whats-new", cmd_update_beta_whats_new, "Set a build's TestFlight notes")
    beta_notes.add_argument("build_id")
    with_text(beta_notes)
    add("submit-beta-review", cmd_submit_beta_review, "Submit a build for beta review").add_argument("build_id")
    add("beta-review-status", cmd_beta_review_status, "Show a build's beta review state").add_argument(
        "build_id"
    )

    add("phased-release", cmd_phased_release, "Show phased release status")
    add("pause-release", cmd_pause_release, "Pause the phased release")
    add("resume-release", cmd_resume_release, "Resume the phased release")
    add("complete-release", cmd_complete_release, "Release to all users now")
    create = add("create-version", cmd_create_version, "Create a new App Store version")
    create.add_argument("version")
    create.add_argument("--platform", default="IOS")
    create.add_argument("--release-type", default="AFTER_APPROVAL")
    create.add_argument("--release-date", help="ISO 8601 date for SCHEDULED releases")
    add("release", cmd_release, "Release a version pending developer release").add_argument("version_id")
    add("enable-phased-release", cmd_enable_phased_release, "Enable 7-day phased release")
    add("pre-order", cmd_pre_order, "Show pre-order status")
    add("enable-pre-order", cmd_enable_pre_order, "Enable or move the pre-order").add_argument(
        "release_date", type=_release_date, help="YYYY-MM-DD"
    )
    with_yes(add("cancel-pre-order", cmd_cancel_pre_order, "Cancel the pre-order"))

    add("territories", cmd_territories, "List territories")
    add("availability", cmd_availability, "Show app availability")
    add("pricing", cmd_pricing, "Show app price schedule")
    add("users", cmd_users, "List team users")
    add("invitations", cmd_invitations, "List pending invitations")
    invite = add("invite-user", cmd_invite_user, "Invite a user to the team")
    invite.add_argument("email")
    invite.add_argument("first_name")
    invite.add_argument("last_name")
    invite.add_argument("roles", nargs="+", help="e.g. DEVELOPER MARKETING")
    invite.add_argument("--app", dest="app_ids", action="append", default=[], help="Limit to this app id (repeatable)")
    with_yes(add("remove-user", cmd_remove_user, "Remove a user from the team")).add_argument("user_id")
    add("cancel-invitation", cmd_cancel_invitation, "Cancel a pending invitation").add_argument(
        "invitation_id"
    )
    add("privacy-types", cmd_privacy_types, "List privacy data types")
    add("privacy-purposes", cmd_privacy_purposes, "List privacy purposes")
    add("privacy-labels", cmd_privacy_labels, "List privacy protection levels")

    parser.command_names = tuple(subparsers.choices)
    return parser


def _command_name(argv: List[str]) -> Optional[str]:
    return next((arg for arg in argv if not arg.startswith("-")), None)


def _configure_logging(args: argparse.Namespace) -> None:
    level = logging.WARNING
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv: Optional[List[str]] = None) -> int:
    """Run the ``asc`` command and return its exit code."""
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()

    command = _command_name(argv)
    if command is None:
        argv.append("status")
    elif command not in parser.command_names:
        print(f"Unknown command: {command}")
        print("Run 'asc help' for usage")
        return 1

    args = parser.parse_args(argv)
    _configure_logging(args)

    out = Output(
        as_json=args.json,
        color=not args.no_color and "NO_COLOR" not in os.environ,
        quiet=args.quiet,
    )

    if args.handler is None:
        parser.print_help()
        return 0

    logger.debug(f"Running command {args.command}")
    try:
        api = AppStoreConnectAPI(Configuration.from_env(), session=Session())
        exit_code = args.handler(api, args, out)
    except ConfigurationError as e:
        out.error(f"Configuration Error: {e}")
        print("Run 'asc help' for setup instructions", file=sys.stderr)
        return 1
    except AppStoreConnectError as e:
        out.error(f"API Error: {e}")
        return 1

    return exit_code or 0


if __name__ == "__main__":
    sys.exit(main())
