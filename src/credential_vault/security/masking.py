"""Display-safe partial redaction of secret strings."""

MASK = "***"
# Values at or below this length are fully masked.
MIN_REVEAL_LENGTH = 6
PREFIX_CHARS = 4
SUFFIX_CHARS = 1


def mask_secret(value: str | None) -> str:
    """Mask a secret for display, e.g. ``"sk_live_abc123xyz"`` -> ``"sk_l***z"``.

    Short values are never partially revealed since a four-character prefix
    and one-character suffix would nearly reconstruct them.
    """
    if not value or len(value) <= MIN_REVEAL_LENGTH:
        return MASK
    return f"{value[:PREFIX_CHARS]}{MASK}{value[-SUFFIX_CHARS:]}"
