"""
Shiprocket login diagnostic.

Prints what the app will send to the carrier (masked), flags stray
whitespace picked up from .env files, then tries one real login.

Usage:
    python scripts/shiprocket_auth_probe.py

Exit code 0 on a successful login, 1 otherwise. Each run is one login
attempt against the carrier's lockout counter; do not loop it.
"""
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from app.core.config import settings, shipping_config_warnings
from app.core.exceptions import ShippingError
from app.core.redaction import mask_email, mask_secret
from app.modules.shipping.token_manager import LOGIN_PATH, TokenManager


def _whitespace_report(name: str) -> None:
    raw = os.getenv(name)
    if raw is None:
        print(f"[ENV] {name}: not in process environment (may come from .env)")
        return
    if raw != raw.strip():
        print(f"[WARN] {name} has leading/trailing whitespace ({len(raw)} chars raw, {len(raw.strip())} stripped)")
    else:
        print(f"[ENV] {name}: {len(raw)} chars, no stray whitespace")


async def probe() -> int:
    print("=" * 60)
    print("SHIPROCKET AUTH DIAGNOSTIC")
    print("=" * 60)

    print(f"[CFG] Base URL:        {settings.SHIPROCKET_BASE_URL or '<empty>'}")
    print(f"[CFG] Email:           {mask_email(settings.SHIPROCKET_EMAIL)}")
    print(f"[CFG] Password:        {mask_secret(settings.SHIPROCKET_PASSWORD)} ({len(settings.SHIPROCKET_PASSWORD)} chars)")
    print(f"[CFG] Pickup location: {settings.SHIPROCKET_PICKUP_LOCATION or '<empty>'}")

    for name in ("SHIPROCKET_BASE_URL", "SHIPROCKET_EMAIL", "SHIPROCKET_PASSWORD"):
        _whitespace_report(name)

    warnings = shipping_config_warnings(settings)
    for warning in warnings:
        print(f"[FAIL] {warning}")
    if not settings.shiprocket_configured:
        return 1

    print(f"\n[TEST] POST {settings.SHIPROCKET_BASE_URL}{LOGIN_PATH}")
    async with httpx.AsyncClient(base_url=settings.SHIPROCKET_BASE_URL) as client:
        tokens = TokenManager(
            client,
            email=settings.SHIPROCKET_EMAIL,
            password=settings.SHIPROCKET_PASSWORD,
            auth_timeout=settings.SHIPROCKET_AUTH_TIMEOUT_SECONDS,
        )
        try:
            token = await tokens.authenticate()
        except ShippingError as e:
            print(f"[FAIL] {e.code}: {e.message}")
            hint = e.details.get("wait_hint")
            if hint:
                print(f"       {hint}")
            return 1

    print(f"[PASS] Login succeeded, token {mask_secret(token)}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(probe()))
