"""
Tests for the asc command-line interface.
"""

import io
import json
import os

import pytest
from unittest.mock import patch

from app_store_connect.cli import Output, build_parser, main
from app_store_connect.exceptions import ConfigurationError, NotFoundError, PermissionError


@pytest.fixture
def api_class(monkeypatch):
    """Patch client construction; the yielded mock class builds the api double."""
    monkeypatch.setenv("NO_COLOR", "1")
    with patch("app_store_connect.cli.AppStoreConnectAPI") as api_class, patch(
        "app_store_connect.cli.Configuration"
    ), patch("app_store_connect.cli.Session"):
        yield api_class


@pytest.fixture
def api(api_class):
    return api_class.return_value


class TestDispatch:
    def test_unknown_command(self, api_class, capsys):
        assert main(["bogus"]) == 1

        out = capsys.readouterr().out
        assert "Unknown command: bogus" in out
        assert "asc help" in out
        api_class.assert_not_called()

    def test_help(self, api_class, capsys):
        assert main(["help"]) == 0
        assert "usage: asc" in capsys.readouterr().out
        api_class.assert_not_called()

    def test_default_command_is_status(self, api, capsys):
        api.app_status.return_value = {
            "app": {"id": "1", "name": "Example", "bundle_id": "com.example.app", "sku": "EX"},
            "versions": [],
            "latest_review": None,
            "subscriptions": [],
        }

        assert main(["--json"]) == 0

        assert json.loads(capsys.readouterr().out)["app"]["name"] == "Example"

    def test_usage_error(self, api):
        with pytest.raises(SystemExit) as exc_info:
            main(["update-keywords"])
        assert exc_info.value.code == 2

    def test_every_command_is_registered(self):
        names = build_parser().command_names
        for command in ("status", "ready", "rejection", "upload-screenshots", "pricing", "session"):
            assert command in names

    @pytest.mark.parametrize(
        "command",
        [
            "review-info", "update-review-notes", "update-review-contact", "update-demo-account",
            "submit", "cancel-review", "create-review-detail", "content-rights", "set-content-rights",
            "add-tester", "remove-tester", "create-group", "delete-group", "group-testers",
            "add-to-group", "remove-from-group", "remove-build", "beta-whats-new",
            "update-beta-whats-new", "submit-beta-review", "beta-review-status",
            "enable-phased-release", "pre-order", "enable-pre-order", "cancel-pre-order",
            "iap-details", "update-iap-note", "update-iap-description", "submit-iap",
            "delete-iap-screenshot", "sub-details", "sub-localizations", "update-sub-localization",
            "update-sub-description", "update-sub-note", "sub-image", "upload-sub-image",
            "delete-sub-image", "sub-review-screenshot", "upload-sub-review-screenshot",
            "delete-sub-review-screenshot", "sub-price-points", "sub-prices", "add-sub-price",
            "sub-intro-offers", "delete-sub-intro-offer", "sub-availability", "set-sub-availability",
            "create-sub", "create-subscription", "fix-sub-metadata", "delete-sub", "subscriptions",
            "urls", "update-marketing-url", "update-support-url", "update-privacy-url",
            "update-app-name", "update-subtitle", "invite-user", "remove-user", "cancel-invitation",
        ],
    )
    def test_management_commands_are_registered(self, command):
        assert command in build_parser().command_names

    def test_subscriptions_alias(self, api, capsys):
        api.subscriptions.return_value = []

        assert main(["subscriptions"]) == 0

        assert "No subscriptions found." in capsys.readouterr().out


class TestErrors:
    def test_configuration_error(self, api_class, capsys):
        api_class.side_effect = ConfigurationError(
            "Missing required configuration: APP_STORE_CONNECT_KEY_ID"
        )

        assert main(["apps"]) == 1

        assert "Configuration Error: Missing required configuration" in capsys.readouterr().err

    def test_api_error(self, api, capsys):
        api.apps.side_effect = NotFoundError("Not found - resource doesn't exist: /apps")

        assert main(["apps"]) == 1

        assert "API Error: Not found" in capsys.readouterr().err


class TestCommands:
    def test_apps_json(self, api, capsys):
        apps = [{"id": "1", "name": "Example", "bundle_id": "com.example.app", "sku": "EX"}]
        api.apps.return_value = apps

        assert main(["--json", "apps"]) == 0

        assert json.loads(capsys.readouterr().out) == apps

    def test_quiet_suppresses_listing(self, api, capsys):
        api.apps.return_value = [{"id": "1", "name": "Example", "bundle_id": "b", "sku": "s"}]

        assert main(["--quiet", "apps"]) == 0

        assert capsys.readouterr().out == ""

    @pytest.mark.parametrize("ready, exit_code", [(True, 0), (False, 1)])
    def test_ready_exit_code(self, api, ready, exit_code, capsys):
        api.submission_readiness.return_value = {
            "ready": ready,
            "current_state": "PREPARE_FOR_SUBMISSION",
            "issues": [] if ready else ["Subscriptions missing metadata: com.example.monthly"],
            "status": {},
        }

        assert main(["ready"]) == exit_code

        out = capsys.readouterr().out
        if ready:
            assert "Ready for submission!" in out
        else:
            assert "com.example.monthly" in out

    def test_update_whats_new(self, api, capsys):
        assert main(["update-whats-new", "Bug", "fixes", "--locale", "de-DE"]) == 0

        api.update_localized_text.assert_called_once_with("whats_new", "Bug fixes", "de-DE")
        assert "Updated \"What's New\" text (de-DE)" in capsys.readouterr().out

    def test_write_command_json_confirmation(self, api, capsys):
        assert main(["--json", "delete-screenshot", "shot-1"]) == 0

        api.delete_app_screenshot.assert_called_once_with("shot-1")
        assert json.loads(capsys.readouterr().out) == {
            "status": "ok",
            "message": "Deleted screenshot shot-1",
        }

    def test_upload_screenshots_reports_failures(self, api, capsys):
        api.find_version.return_value = {"id": "v2"}
        api.app_store_version_localizations.return_value = [{"id": "loc-en", "locale": "en-US"}]
        api.upload_screenshot_directory.return_value = {
            "uploaded": ["APP_IPHONE_65/01.png"],
            "errors": ["APP_IPHONE_65/02.png: Upload failed"],
        }

        assert main(["upload-screenshots", "shots"]) == 1

        api.upload_screenshot_directory.assert_called_once_with("loc-en", "shots")
        assert "1 uploaded, 1 failed" in capsys.readouterr().out

    def test_upload_screenshots_without_editable_version(self, api, capsys):
        api.find_version.return_value = None

        assert main(["upload-screenshots", "shots"]) == 1

        assert "No editable version localization for en-US" in capsys.readouterr().err

    def test_no_rejection(self, api, capsys):
        api.rejection_info.return_value = None

        assert main(["rejection"]) == 0

        assert "No rejected versions found." in capsys.readouterr().out


class TestSession:
    def test_save_uses_argument(self, api, monkeypatch):
        monkeypatch.setenv("FASTLANE_SESSION", "from-env")

        assert main(["session", "save", "myacinfo=abc"]) == 0

        api.session.save.assert_called_once_with("myacinfo=abc")

    def test_save_falls_back_to_environment(self, api, monkeypatch, capsys):
        monkeypatch.setenv("FASTLANE_SESSION", "myacinfo=env")
        api.session.session_file = "/home/me/.app_store_connect/session"

        assert main(["session", "save"]) == 0

        api.session.save.assert_called_once_with("myacinfo=env")
        assert "Session saved to /home/me/.app_store_connect/session" in capsys.readouterr().out

    def test_save_without_any_data(self, api, monkeypatch, capsys):
        monkeypatch.delenv("FASTLANE_SESSION", raising=False)

        assert main(["session", "save"]) == 1

        api.session.save.assert_not_called()
        assert "No session data: pass it or set FASTLANE_SESSION" in capsys.readouterr().err


class TestColor:
    def test_no_color_flag_leaves_environment_alone(self, api, monkeypatch, capsys):
        monkeypatch.delenv("NO_COLOR", raising=False)
        api.apps.return_value = []

        assert main(["--no-color", "apps"]) == 0

        assert "NO_COLOR" not in os.environ
        assert "\033[" not in capsys.readouterr().out

    def test_color_by_default(self, api, monkeypatch, capsys):
        monkeypatch.delenv("NO_COLOR", raising=False)
        api.apps.return_value = []

        assert main(["apps"]) == 0

        assert "\033[1mApps\033[0m" in capsys.readouterr().out

    def test_no_color_environment(self, api, capsys):
        api.apps.return_value = []

        assert main(["apps"]) == 0

        assert "\033[" not in capsys.readouterr().out


ACTIVE_VERSION = {
    "id": "v2",
    "attributes": {"versionString": "2.0", "appStoreState": "PREPARE_FOR_SUBMISSION"},
}

MONTHLY = {
    "id": "s1",
    "product_id": "com.example.monthly",
    "name": "Monthly",
    "state": "MISSING_METADATA",
}


class TestAppReviewCommands:
    def test_review_info_masks_password(self, api, capsys):
        api.find_version.return_value = ACTIVE_VERSION
        api.app_store_review_detail.return_value = {
            "id": "rd1",
            "contact_first_name": "Ada",
            "contact_last_name": "Lovelace",
            "contact_phone": "+1 555 0100",
            "contact_email": "ada@example.com",
            "demo_account_name": "demo",
            "demo_account_password": "s3cret",
            "demo_account_required": True,
            "notes": "Use the demo account",
        }

        assert main(["--json", "review-info"]) == 0

        detail = json.loads(capsys.readouterr().out)
        assert detail["demo_account_password"] == "****"
        assert detail["contact_email"] == "ada@example.com"

    def test_update_review_contact(self, api, capsys):
        api.find_version.return_value = ACTIVE_VERSION

        assert main(["update-review-contact", "--email", "ada@example.com", "--phone", "+1 555 0100"]) == 0

        api.upsert_app_store_review_detail.assert_called_once_with(
            "v2",
            contact_first_name=None,
            contact_last_name=None,
            contact_email="ada@example.com",
            contact_phone="+1 555 0100",
        )
        assert "Review contact updated (version 2.0)" in capsys.readouterr().out

    def test_update_review_contact_needs_a_field(self, api, capsys):
        assert main(["update-review-contact"]) == 1

        api.upsert_app_store_review_detail.assert_not_called()
        assert "--first-name" in capsys.readouterr().err

    def test_update_demo_account_not_required(self, api):
        api.find_version.return_value = ACTIVE_VERSION

        assert main(["update-demo-account", "--not-required"]) == 0

        api.upsert_app_store_review_detail.assert_called_once_with(
            "v2",
            demo_account_name=None,
            demo_account_password=None,
            demo_account_required=False,
        )

    def test_update_review_notes(self, api):
        api.find_version.return_value = ACTIVE_VERSION

        assert main(["update-review-notes", "Use", "the", "demo", "account"]) == 0

        api.upsert_app_store_review_detail.assert_called_once_with("v2", notes="Use the demo account")

    def test_create_review_detail_keeps_existing(self, api, capsys):
        api.find_version.return_value = ACTIVE_VERSION
        api.app_store_review_detail.return_value = {"id": "rd1", "notes": None}

        assert main(["create-review-detail", "--notes", "hi"]) == 0

        api.create_app_store_review_detail.assert_not_called()
        assert "already exists" in capsys.readouterr().out

    def test_submit(self, api, capsys):
        api.find_version.side_effect = lambda *states: (
            {"id": "v3", "attributes": {"versionString": "3.0"}}
            if states == ("READY_FOR_SUBMISSION",)
            else None
        )

        assert main(["submit", "--yes"]) == 0

        api.create_review_submission.assert_called_once_with(platform="IOS")
        assert "Version 3.0 submitted for review" in capsys.readouterr().out

    def test_submit_declined(self, api, capsys):
        api.find_version.return_value = {"id": "v3", "attributes": {"versionString": "3.0"}}

        with patch("builtins.input", return_value="n"):
            assert main(["submit"]) == 0

        api.create_review_submission.assert_not_called()
        assert "Cancelled." in capsys.readouterr().out

    def test_submit_while_preparing(self, api, capsys):
        api.find_version.side_effect = lambda *states: (
            ACTIVE_VERSION if states == ("PREPARE_FOR_SUBMISSION",) else None
        )

        assert main(["submit", "--yes"]) == 1

        api.create_review_submission.assert_not_called()
        assert "Version 2.0 is still being prepared." in capsys.readouterr().out

    def test_cancel_review(self, api):
        api.review_submissions.return_value = [
            {"id": "rs1", "attributes": {"state": "COMPLETE"}},
            {"id": "rs2", "attributes": {"state": "WAITING_FOR_REVIEW"}},
        ]

        assert main(["cancel-review", "--yes"]) == 0

        api.cancel_review_submission.assert_called_once_with("rs2")

    def test_set_content_rights(self, api, capsys):
        api.find_version.return_value = ACTIVE_VERSION

        assert main(["set-content-rights", "NO"]) == 0

        api.update_content_rights.assert_called_once_with("v2", False)
        assert "NO (no third-party content)" in capsys.readouterr().out

    def test_set_content_rights_needs_prepared_version(self, api, capsys):
        api.find_version.return_value = None

        assert main(["set-content-rights", "yes"]) == 1

        assert "No version in PREPARE_FOR_SUBMISSION state" in capsys.readouterr().err


class TestTestFlightCommands:
    def test_add_tester_to_groups(self, api, capsys):
        api.create_beta_tester.return_value = {"id": "t1", "email": "qa@example.com", "state": "INVITED"}

        assert main(["add-tester", "qa@example.com", "--first-name", "Q", "--group", "g1", "--group", "g2"]) == 0

        api.create_beta_tester.assert_called_once_with(
            "qa@example.com", first_name="Q", last_name=None, group_ids=["g1", "g2"]
        )
        assert "Invited tester qa@example.com (t1)" in capsys.readouterr().out

    def test_create_group_with_limit(self, api):
        api.create_beta_group.return_value = {"id": "g9", "name": "Public", "public_link": None}

        assert main(["create-group", "Public", "--public", "--limit", "50"]) == 0

        api.create_beta_group.assert_called_once_with(
            "Public", public_link_enabled=True, public_link_limit=50, public_link_limit_enabled=True
        )

    def test_remove_from_group(self, api):
        assert main(["remove-from-group", "g1", "t1", "t2"]) == 0
        api.remove_testers_from_group.assert_called_once_with("g1", ["t1", "t2"])

    def test_remove_build(self, api):
        assert main(["remove-build", "b1", "g1"]) == 0
        api.remove_build_from_groups.assert_called_once_with("b1", ["g1"])

    def test_update_beta_whats_new_updates_existing_locale(self, api):
        api.beta_build_localizations.return_value = [
            {"id": "bl1", "locale": "en-US", "whats_new": "old"}
        ]

        assert main(["update-beta-whats-new", "b1", "New", "build"]) == 0

        api.update_beta_build_localization.assert_called_once_with("bl1", "New build")
        api.create_beta_build_localization.assert_not_called()

    def test_update_beta_whats_new_creates_missing_locale(self, api):
        api.beta_build_localizations.return_value = []

        assert main(["update-beta-whats-new", "b1", "Neu", "--locale", "de-DE"]) == 0

        api.create_beta_build_localization.assert_called_once_with("b1", "de-DE", "Neu")

    def test_submit_beta_review_once(self, api, capsys):
        api.beta_app_review_submission.return_value = {"id": "br1", "beta_review_state": "IN_REVIEW"}

        assert main(["submit-beta-review", "b1"]) == 0

        api.submit_for_beta_review.assert_not_called()
        assert "already submitted (IN_REVIEW)" in capsys.readouterr().out


class TestReleaseCommands:
    def test_enable_phased_release(self, api, capsys):
        api.find_version.return_value = ACTIVE_VERSION
        api.phased_release.return_value = None
        api.create_phased_release.return_value = {"id": "pr1", "state": "INACTIVE"}

        assert main(["enable-phased-release"]) == 0

        api.create_phased_release.assert_called_once_with("v2")
        assert "Phased release pr1 enabled for version 2.0" in capsys.readouterr().out

    def test_enable_pre_order_moves_existing_date(self, api):
        api.pre_order.return_value = {"id": "po1", "app_release_date": "2025-01-01"}

        assert main(["enable-pre-order", "2025-03-15"]) == 0

        api.update_pre_order.assert_called_once_with("po1", "2025-03-15")
        api.create_pre_order.assert_not_called()

    def test_enable_pre_order_rejects_bad_date(self, api):
        with pytest.raises(SystemExit) as exc_info:
            main(["enable-pre-order", "March 15"])
        assert exc_info.value.code == 2

    def test_cancel_pre_order(self, api):
        api.pre_order.return_value = {"id": "po1", "app_release_date": "2025-03-15"}

        with patch("builtins.input", return_value="y"):
            assert main(["cancel-pre-order"]) == 0

        api.delete_pre_order.assert_called_once_with("po1")


class TestInAppPurchaseCommands:
    def test_update_iap_description_creates_missing_locale(self, api):
        api.find_in_app_purchase.return_value = {"id": "iap1", "name": "Coins", "product_id": "com.example.coins"}
        api.in_app_purchase_localizations.return_value = [{"id": "il1", "locale": "en-US"}]

        assert main(["update-iap-description", "com.example.coins", "Viele", "Münzen", "--locale", "de-DE"]) == 0

        api.create_in_app_purchase_localization.assert_called_once_with(
            "iap1", "de-DE", "Coins", "Viele Münzen"
        )
        api.update_in_app_purchase_localization.assert_not_called()

    def test_update_iap_note(self, api):
        api.find_in_app_purchase.return_value = {"id": "iap1"}

        assert main(["update-iap-note", "com.example.coins", "Tap", "Buy"]) == 0

        api.update_in_app_purchase.assert_called_once_with("iap1", review_note="Tap Buy")

    def test_delete_iap_screenshot_when_missing(self, api, capsys):
        api.find_in_app_purchase.return_value = {"id": "iap1"}
        api.iap_review_screenshot.return_value = None

        assert main(["delete-iap-screenshot", "com.example.coins"]) == 0

        api.delete_iap_review_screenshot.assert_not_called()
        assert "No review screenshot for com.example.coins" in capsys.readouterr().out


class TestSubscriptionCommands:
    def test_update_sub_localization_needs_a_field(self, api, capsys):
        assert main(["update-sub-localization", "com.example.monthly"]) == 1
        assert "Pass --name or --description" in capsys.readouterr().err

    def test_update_sub_description(self, api):
        api.find_subscription.return_value = MONTHLY
        api.subscription_localizations.return_value = [{"id": "sl1", "locale": "en-US"}]

        assert main(["update-sub-description", "com.example.monthly", "All", "features"]) == 0

        api.update_subscription_localization.assert_called_once_with(
            "sl1", name=None, description="All features"
        )

    def test_set_sub_availability(self, api):
        api.find_subscription.return_value = MONTHLY

        assert main(["set-sub-availability", "com.example.monthly", "usa", "can"]) == 0

        api.set_subscription_availability.assert_called_once_with(
            "s1", ["USA", "CAN"], available_in_new_territories=False
        )

    def test_add_sub_price(self, api):
        api.find_subscription.return_value = MONTHLY

        assert main(["add-sub-price", "com.example.monthly", "pp1", "--start-date", "2025-02-01"]) == 0

        api.create_subscription_price.assert_called_once_with("s1", "pp1", start_date="2025-02-01")

    def test_create_sub(self, api, capsys):
        api.subscription_groups.return_value = [{"id": "g1", "reference_name": "Premium"}]
        api.create_subscription.return_value = dict(MONTHLY, id="s9")
        api.subscription_localizations.return_value = []
        api.create_subscription_localization.return_value = {"data": {"id": "sl9"}}

        exit_code = main(
            [
                "create-sub", "com.example.monthly", "Monthly", "--period", "1 month",
                "--display-name", "Monthly Plan", "--yes",
            ]
        )

        assert exit_code == 0
        api.create_subscription.assert_called_once_with(
            "g1",
            "Monthly",
            "com.example.monthly",
            "ONE_MONTH",
            family_sharable=False,
            review_note=None,
            group_level=None,
        )
        api.create_subscription_localization.assert_called_once_with("s9", "en-US", "Monthly Plan", None)
        assert "Created subscription com.example.monthly (s9)" in capsys.readouterr().out

    def test_create_sub_needs_group_choice(self, api, capsys):
        api.subscription_groups.return_value = [
            {"id": "g1", "reference_name": "Premium"},
            {"id": "g2", "reference_name": "Pro"},
        ]

        assert main(["create-subscription", "com.example.yearly", "Yearly", "--yes"]) == 1

        api.create_subscription.assert_not_called()
        assert "Pass --group" in capsys.readouterr().err

    def test_create_sub_rejects_unknown_period(self, api):
        with pytest.raises(SystemExit) as exc_info:
            main(["create-sub", "com.example.x", "X", "--period", "fortnight"])
        assert exc_info.value.code == 2

    def test_fix_sub_metadata_skips_existing_and_unknown_price(self, api, capsys):
        api.find_subscription.return_value = MONTHLY
        api.subscription_localizations.return_value = [{"id": "sl1", "locale": "en-US"}]
        api.subscription_price_points.return_value = [{"id": "pp2"}]
        api.create_subscription_introductory_offer.return_value = {"id": "io1"}

        exit_code = main(
            [
                "fix-sub-metadata", "com.example.monthly", "--display-name", "Monthly",
                "--price-point", "pp1", "--price-territory", "USA",
                "--intro-offer", "free-trial", "--intro-duration", "1w", "--yes",
            ]
        )

        assert exit_code == 0
        api.create_subscription_localization.assert_not_called()
        api.create_subscription_price.assert_not_called()
        api.create_subscription_introductory_offer.assert_called_once_with(
            "s1", "FREE_TRIAL", "ONE_WEEK", subscription_price_point_id=None
        )
        out = capsys.readouterr().out
        assert "Skip localization en-US (already exists)" in out
        assert "Price point pp1 not found for USA" in out

    def test_delete_sub_explains_forbidden(self, api, capsys):
        api.find_subscription.return_value = MONTHLY
        api.delete_subscription.side_effect = PermissionError("Forbidden - cannot be deleted")

        assert main(["delete-sub", "com.example.monthly", "--yes"]) == 1

        assert "never submitted for review" in capsys.readouterr().err


class TestAppInfoCommands:
    def test_urls_unknown_locale(self, api, capsys):
        api.find_version.return_value = ACTIVE_VERSION
        api.app_store_version_localizations.return_value = [
            {"id": "vl1", "locale": "en-US", "marketing_url": None, "support_url": "https://example.com"}
        ]

        assert main(["urls", "fr-FR"]) == 1

        assert "Locale not found: fr-FR (available: en-US)" in capsys.readouterr().err

    def test_update_support_url(self, api):
        api.find_version.return_value = ACTIVE_VERSION
        api.app_store_version_localizations.return_value = [{"id": "vl1", "locale": "en-US"}]

        assert main(["update-support-url", "https://example.com/help"]) == 0

        api.update_app_store_version_localization.assert_called_once_with(
            "vl1", support_url="https://example.com/help"
        )

    def test_update_app_name(self, api):
        assert main(["update-app-name", "Example", "Pro", "--locale", "de-DE"]) == 0
        api.update_app_name.assert_called_once_with("Example Pro", "de-DE")


class TestUserCommands:
    def test_invite_user(self, api):
        api.create_user_invitation.return_value = {"id": "i1", "email": "dev@example.com", "roles": ["DEVELOPER"]}

        assert main(["invite-user", "dev@example.com", "Dev", "Eloper", "developer", "--app", "123"]) == 0

        api.create_user_invitation.assert_called_once_with(
            "dev@example.com",
            "Dev",
            "Eloper",
            ["DEVELOPER"],
            all_apps_visible=False,
            visible_app_ids=["123"],
        )

    def test_remove_user_declined(self, api):
        with patch("builtins.input", return_value=""):
            assert main(["remove-user", "u1"]) == 0
        api.delete_user.assert_not_called()

    def test_cancel_invitation(self, api):
        assert main(["cancel-invitation", "i1"]) == 0
        api.delete_user_invitation.assert_called_once_with("i1")


class TestOutput:
    def test_state_colors(self):
        out = Output(color=True, stream=io.StringIO())
        assert out.state("REJECTED") == "\033[31mREJECTED\033[0m"
        assert out.state("PROCESSING") == "PROCESSING"
        assert out.state(None) == "UNKNOWN"

    def test_plain_state(self):
        assert Output(color=False).state("REJECTED") == "REJECTED"

    def test_success_printed_when_quiet(self):
        stream = io.StringIO()
        Output(color=False, quiet=True, stream=stream).success("Saved")
        assert stream.getvalue() == "Saved\n"
