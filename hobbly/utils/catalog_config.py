"""Catalog configuration read from environment variables."""

import os


class CatalogConfig:
    """Settings for the catalog access layer."""

    SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
    SUPABASE_KEY = os.environ.get("SUPABASE_KEY") or os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")

    STORAGE_BUCKET = os.environ.get("STORAGE_BUCKET", "activities")

    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "20"))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "100"))

    # Bound on every round trip to Supabase (seconds)
    REQUEST_TIMEOUT_SECONDS = float(os.environ.get("REQUEST_TIMEOUT_SECONDS", "30"))

    # "strict" propagates tag lookup failures, "lenient" lists without the tag filter
    TAG_RESOLUTION_POLICY = os.environ.get("TAG_RESOLUTION_POLICY", "strict").lower()

    REFERENCE_CACHE_TTL_SECONDS = float(os.environ.get("REFERENCE_CACHE_TTL_SECONDS", "300"))

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "EUR")

    # Tables and views
    ACTIVITIES_TABLE = "activities"
    ACTIVITIES_VIEW = "activities_full"
    ACTIVITY_TAGS_TABLE = "activity_tags"
    TAGS_TABLE = "tags"
    CATEGORIES_TABLE = "categories"
    PROFILES_TABLE = "user_profiles"
