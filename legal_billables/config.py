"""Settings keys and typed loading from the settings table."""

from __future__ import annotations

from .models import Settings
from .store import EntryStore

AUTO_TRACKING_SETTING_KEY = "autoTracking"
AI_SUMMARIES_SETTING_KEY = "aiSummaries"
DEFAULT_RATE_SETTING_KEY = "defaultRate"
BACKEND_URL_SETTING_KEY = "backendUrl"
INACTIVITY_SETTING_KEY = "inactivityThresholdSeconds"
REQUEST_TIMEOUT_SETTING_KEY = "requestTimeoutSeconds"

BOOL_KEYS = frozenset({AUTO_TRACKING_SETTING_KEY, AI_SUMMARIES_SETTING_KEY})
FLOAT_KEYS = frozenset({DEFAULT_RATE_SETTING_KEY, INACTIVITY_SETTING_KEY, REQUEST_TIMEOUT_SETTING_KEY})
STRING_KEYS = frozenset({BACKEND_URL_SETTING_KEY})
KNOWN_KEYS = BOOL_KEYS | FLOAT_KEYS | STRING_KEYS


def load_settings(store: EntryStore) -> Settings:
    defaults = Settings()
    return Settings(
        auto_tracking=store.get_setting_bool(AUTO_TRACKING_SETTING_KEY, defaults.auto_tracking),
        ai_summaries=store.get_setting_bool(AI_SUMMARIES_SETTING_KEY, defaults.ai_summaries),
        default_rate=store.get_setting_float(DEFAULT_RATE_SETTING_KEY, defaults.default_rate),
        backend_url=(store.get_setting(BACKEND_URL_SETTING_KEY) or "").strip() or defaults.backend_url,
        inactivity_threshold_seconds=store.get_setting_float(
            INACTIVITY_SETTING_KEY, defaults.inactivity_threshold_seconds
        ),
        request_timeout_seconds=store.get_setting_float(
            REQUEST_TIMEOUT_SETTING_KEY, defaults.request_timeout_seconds
        ),
    )


def apply_setting(store: EntryStore, key: str, raw_value: str) -> None:
    if key not in KNOWN_KEYS:
        raise ValueError(f"Unknown setting: {key}")
    value = raw_value.strip()
    if key in BOOL_KEYS:
        lowered = value.lower()
        if lowered in {"1", "true", "yes", "on"}:
            value = "1"
        elif lowered in {"0", "false", "no", "off"}:
            value = "0"
        else:
            raise ValueError(f"{key} expects true/false, got {raw_value!r}")
    elif key in FLOAT_KEYS:
        try:
            parsed = float(value)
        except ValueError as exc:
            raise ValueError(f"{key} expects a number, got {raw_value!r}") from exc
        if parsed < 0:
            raise ValueError(f"{key} must not be negative")
        value = str(parsed)
    elif not value:
        raise ValueError(f"{key} must not be empty")
    store.set_setting(key, value)
