import re
from typing import Optional
from urllib.parse import quote

from meetread.core.config import settings

_NON_DIAL_CHARS = re.compile(r"[^\d+]")
# left unescaped in the prefilled text
_URI_SAFE = "-_.!~*'()"


def normalize_phone_number(phone: str) -> Optional[str]:
    """Reduce a phone number to the digits wa.me expects.

    Everything except digits is dropped, then leading zeros. Returns None when
    nothing usable is left.
    """
    digits = _NON_DIAL_CHARS.sub("", phone or "").replace("+", "").lstrip("0")
    return digits or None


def compose_borrow_message(
    owner_name: Optional[str], requester_name: str, book_title: str, note: Optional[str] = None
) -> str:
    lines = [
        f'Hai {owner_name or "Admin"}, saya {requester_name} ingin meminjam buku "{book_title}".',
        "Pesan ini dikirim melalui MeetRead.",
    ]
    if note:
        lines.append(f"Catatan: {note}")
    return "\n".join(lines)


def build_whatsapp_url(phone_digits: str, text: str) -> str:
    """Deep link that opens a chat with `phone_digits` prefilled with `text`."""
    return f"{settings.WHATSAPP_BASE_URL}/{phone_digits}?text={quote(text, safe=_URI_SAFE)}"
