"""Base exception shared by every error raised from the SDK."""


class PrivacyPoolsError(Exception):
    """Root of the privacy_pools exception hierarchy."""
    pass
