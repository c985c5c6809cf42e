"""
Shiprocket response shapes.

The same success field shows up at different depths depending on endpoint
and account (observed: top level, under "response", under "response.data",
under "data"). Every lookup goes through extract_field so the list of known
shapes lives here and nowhere else.
"""
from typing import Any, Optional

# Checked in order; first non-blank hit wins
RESPONSE_SHAPES = (
    (),
    ("response",),
    ("response", "data"),
    ("data",),
)


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def extract_field(body: Any, field: str) -> Optional[Any]:
    """Return the first non-blank value of `field` across the known shapes, else None."""
    if not isinstance(body, dict):
        return None
    for path in RESPONSE_SHAPES:
        node = body
        for key in path:
            node = node.get(key) if isinstance(node, dict) else None
        if isinstance(node, dict) and _present(node.get(field)):
            return node.get(field)
    return None
