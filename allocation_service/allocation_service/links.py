"""Buyer order links, the payload encoded into each item's scannable code."""

import base64
import binascii
from typing import Optional
from urllib.parse import quote, unquote

from .schemas import normalize_mnemonic


def order_link(base_url: str, mnemonic: str, webhook_url: Optional[str] = None) -> str:
    """Build the buyer link for ``mnemonic``.

    The sync webhook travels base64-encoded in the ``w`` query parameter so
    a buyer's device can fetch the same snapshot source.
    """
    base = base_url.rstrip("/")
    query = ""
    if webhook_url:
        encoded = base64.b64encode(webhook_url.encode("utf-8")).decode("ascii")
        query = f"?w={quote(encoded, safe='')}"
    return f"{base}{query}#/order/{normalize_mnemonic(mnemonic)}"


def decode_webhook(param: Optional[str]) -> Optional[str]:
    """Reverse the ``w`` parameter; anything that is not an http(s) URL yields None."""
    if not param:
        return None
    # Some scanners turn '+' into spaces
    text = unquote(param).strip().replace(" ", "+")
    try:
        decoded = base64.b64decode(text, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    return decoded if decoded.startswith("http") else None
