# helpers/verification.py
import requests

LINK_FIELDS = ("url", "link", "verificationUrl", "data")


class VerificationError(Exception):
    """Backend unreachable or returned something we can't use."""


def extract_link(payload) -> str | None:
    """Older backend builds used different field names for the URL."""
    if not isinstance(payload, dict):
        return None
    for key in LINK_FIELDS:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def start_verification(base_url: str, member_id, timeout: float = 5) -> str | None:
    """Ask the backend for a one-time verification URL for this member."""
    if not base_url:
        raise VerificationError("Backend URL is not configured")

    member_id = str(member_id)
    try:
        res = requests.post(
            f"{base_url.rstrip('/')}/link/start",
            json={"member_id": member_id, "discord_id": member_id, "discordId": member_id},
            timeout=timeout,
        )
        res.raise_for_status()
        payload = res.json()
    except (requests.RequestException, ValueError) as e:
        raise VerificationError(str(e)) from e

    return extract_link(payload)
