"""
Feature Flags Configuration

Centralized feature flag management for ringside.
All feature flags are loaded from environment variables.
"""
import os


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


class FeatureFlags:
    """
    Feature flags for the application.

    Flags are read once at import; tests toggle them with monkeypatch.setattr
    on the class.
    """

    # HTTP roster routes (transitions, status, listings, registry)
    FEATURE_ROSTER_API: bool = get_bool_env('FEATURE_ROSTER_API', True)

    # HTTP title routes (championship changes, vacate, history)
    FEATURE_CHAMPIONSHIP_LEDGER: bool = get_bool_env('FEATURE_CHAMPIONSHIP_LEDGER', True)

    # Persist a lifecycle_events row for every successful transition
    FEATURE_EVENT_LOG: bool = get_bool_env('FEATURE_EVENT_LOG', True)

    @classmethod
    def get_all_flags(cls) -> dict:
        """Get all feature flags as a dictionary."""
        return {
            key: value
            for key, value in vars(cls).items()
            if not key.startswith('_') and isinstance(value, bool)
        }


# Singleton instance for easy importing
feature_flags = FeatureFlags()
