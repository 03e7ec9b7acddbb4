"""
App privacy ("nutrition label") reference data.

Apple's public API cannot read or write privacy declarations; the
questionnaire is completed in the App Store Connect web UI. These tables
list the identifiers used there so they can be reviewed from the CLI.
"""

from typing import Dict, List

PRIVACY_DATA_TYPES = (
    ("NAME", "Name", "Contact Info"),
    ("EMAIL_ADDRESS", "Email Address", "Contact Info"),
    ("PHONE_NUMBER", "Phone Number", "Contact Info"),
    ("PHYSICAL_ADDRESS", "Physical Address", "Contact Info"),
    ("OTHER_USER_CONTACT_INFO", "Other User Contact Info", "Contact Info"),
    ("HEALTH", "Health", "Health & Fitness"),
    ("FITNESS", "Fitness", "Health & Fitness"),
    ("PAYMENT_INFO", "Payment Info", "Financial Info"),
    ("CREDIT_INFO", "Credit Info", "Financial Info"),
    ("OTHER_FINANCIAL_INFO", "Other Financial Info", "Financial Info"),
    ("PRECISE_LOCATION", "Precise Location", "Location"),
    ("COARSE_LOCATION", "Coarse Location", "Location"),
    ("SENSITIVE_INFO", "Sensitive Info", "Sensitive Info"),
    ("CONTACTS", "Contacts", "Contacts"),
    ("EMAILS_OR_TEXT_MESSAGES", "Emails or Text Messages", "User Content"),
    ("PHOTOS_OR_VIDEOS", "Photos or Videos", "User Content"),
    ("AUDIO_DATA", "Audio Data", "User Content"),
    ("GAMEPLAY_CONTENT", "Gameplay Content", "User Content"),
    ("CUSTOMER_SUPPORT", "Customer Support", "User Content"),
    ("OTHER_USER_CONTENT", "Other User Content", "User Content"),
    ("BROWSING_HISTORY", "Browsing History", "Browsing History"),
    ("SEARCH_HISTORY", "Search History", "Search History"),
    ("USER_ID", "User ID", "Identifiers"),
    ("DEVICE_ID", "Device ID", "Identifiers"),
    ("PURCHASE_HISTORY", "Purchase History", "Purchases"),
    ("PRODUCT_INTERACTION", "Product Interaction", "Usage Data"),
    ("ADVERTISING_DATA", "Advertising Data", "Usage Data"),
    ("OTHER_USAGE_DATA", "Other Usage Data", "Usage Data"),
    ("CRASH_DATA", "Crash Data", "Diagnostics"),
    ("PERFORMANCE_DATA", "Performance Data", "Diagnostics"),
    ("OTHER_DIAGNOSTIC_DATA", "Other Diagnostic Data", "Diagnostics"),
    ("OTHER_DATA", "Other Data Types", "Other"),
)

PRIVACY_PURPOSES = (
    (
        "THIRD_PARTY_ADVERTISING",
        "Third-Party Advertising",
        "Used to display third-party ads or share with ad networks",
    ),
    (
        "DEVELOPERS_ADVERTISING",
        "Developer's Advertising or Marketing",
        "Used to display first-party ads or marketing communications",
    ),
    ("ANALYTICS", "Analytics", "Used to evaluate user behavior or measure audience size"),
    (
        "PRODUCT_PERSONALIZATION",
        "Product Personalization",
        "Used to customize features, content, or recommendations",
    ),
    (
        "APP_FUNCTIONALITY",
        "App Functionality",
        "Used for features like authentication, security, or preferences",
    ),
    ("OTHER_PURPOSES", "Other Purposes", "Used for purposes not listed above"),
)

PRIVACY_PROTECTION_LEVELS = (
    (
        "DATA_USED_TO_TRACK_YOU",
        "Used to Track You",
        "Data used for cross-app/cross-site tracking (requires ATT prompt)",
    ),
    (
        "DATA_LINKED_TO_YOU",
        "Linked to You",
        "Data associated with user identity (account, device, etc.)",
    ),
    (
        "DATA_NOT_LINKED_TO_YOU",
        "Not Linked to You",
        "Data collected but not associated with user identity",
    ),
    ("DATA_NOT_COLLECTED", "Not Collected", "Data is not collected by the app"),
)


class PrivacyMixin:
    def privacy_data_types(self) -> List[Dict[str, str]]:
        return [
            {"id": type_id, "name": name, "category": category}
            for type_id, name, category in PRIVACY_DATA_TYPES
        ]

    def privacy_purposes(self) -> List[Dict[str, str]]:
        return [
            {"id": purpose_id, "name": name, "description": description}
            for purpose_id, name, description in PRIVACY_PURPOSES
        ]

    def privacy_protection_levels(self) -> List[Dict[str, str]]:
        return [
            {"id": level_id, "name": name, "description": description}
            for level_id, name, description in PRIVACY_PROTECTION_LEVELS
        ]
