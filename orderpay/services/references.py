"""Merchant references: tie a processor session back to our order.

encode() is deterministic for an order number, so every retry of the same
checkout sends the same reference. decode() never raises; None sends the
reconciler to its other lookup paths.
"""

import re

ORDER_NUMBER_RE = re.compile(r"^ORD-\d+-[A-Z0-9]{6}$")
UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_EMBEDDED_UUID_RE = re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")


def looks_like_order_number(value: str) -> bool:
    return bool(ORDER_NUMBER_RE.match(value))


def looks_like_uuid(value: str) -> bool:
    return bool(UUID_RE.match(value))


class ReferenceCodec:
    def __init__(self, prefix: str):
        if not prefix:
            raise ValueError("Merchant reference prefix is required")
        self.prefix = prefix

    def encode(self, order_number: str) -> str:
        return f"{self.prefix}{order_number}"

    def decode(self, reference) -> str | None:
        """Order number (or bare order ID) carried by a reference, else None."""
        if not isinstance(reference, str):
            return None
        ref = reference.strip()
        if not ref:
            return None
        if ref.startswith(self.prefix):
            rest = ref[len(self.prefix):].strip()
            return rest or None
        if looks_like_order_number(ref) or looks_like_uuid(ref):
            return ref
        return None

    def extract_order_id(self, reference) -> str | None:
        """Raw order ID in a reference: a bare UUID or one embedded like ORD-<uuid>-<ts>."""
        if not isinstance(reference, str):
            return None
        match = _EMBEDDED_UUID_RE.search(reference)
        return match.group(0).lower() if match else None
