"""Resource-specific API methods mixed into AppStoreConnectAPI."""

from .app_info import AppInfoMixin
from .apps import AppsMixin
from .customer_reviews import CustomerReviewsMixin
from .in_app_purchases import InAppPurchasesMixin
from .pricing import PricingMixin
from .privacy import PrivacyMixin
from .releases import ReleasesMixin
from .resolution_center import ResolutionCenterMixin
from .screenshots import ScreenshotsMixin
from .subscriptions import SubscriptionsMixin
from .test_flight import BetaTestingMixin
from .users import UsersMixin
from .versions import VersionsMixin

__all__ = [
    "AppInfoMixin",
    "AppsMixin",
    "BetaTestingMixin",
    "CustomerReviewsMixin",
    "InAppPurchasesMixin",
    "PricingMixin",
    "PrivacyMixin",
    "ReleasesMixin",
    "ResolutionCenterMixin",
    "ScreenshotsMixin",
    "SubscriptionsMixin",
    "UsersMixin",
    "VersionsMixin",
]
