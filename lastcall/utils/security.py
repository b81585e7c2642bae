"""Security utility functions for input sanitization."""


def clamp_page_size(page_size: int, max_size: int = 200) -> int:
    """Clamp page_size to a safe maximum to prevent excessive data retrieval."""
    if page_size < 1:
        return 1
    return min(page_size, max_size)


# Whitelist of fields allowed in dynamic UPDATE/INSERT queries per entity
BLAST_UPDATE_FIELDS = frozenset({
    "message", "targeting", "scheduled_date", "time_slot", "status",
})

RECIPIENT_FORM_FIELDS = frozenset({
    "name", "email", "gender", "birthdate", "membership_status", "consent",
})

ACCOUNT_CREATE_FIELDS = frozenset({
    "name", "slug", "phone_number", "messaging_profile_id", "email",
    "coupons_enabled", "include_membership_question", "signup_enabled",
})


def filter_fields(data: dict, allowed: frozenset) -> dict:
    """Drop keys that are not in the whitelist."""
    return {k: v for k, v in data.items() if k in allowed}
