#!/usr/bin/env python3
"""
Revoke an access token from the command line.

Revocation is immediate: the next validation of the token returns
``valid: false`` and the client evicts its cached entitlement.

Usage:
    python -m scripts.revoke_token <token_id> --reason "chargeback"

    List a device's tokens (ids shown as 8-character hints):
        python -m scripts.revoke_token --device <device_id>
"""

import argparse
import asyncio
import os
import sys

# Add parent directory to path for imports when run as script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from keygate.core.errors import KeyGateError
from keygate.db.session import AsyncSessionLocal, engine
from keygate.services.operator import TokenOperatorService
from keygate.services.token_store import TokenStore


async def revoke(token_id: str, reason: str | None) -> int:
    async with AsyncSessionLocal() as session:
        service = TokenOperatorService(TokenStore(session))
        try:
            token = await service.revoke(token_id, reason)
        except KeyGateError as e:
            print(f"ERROR: {e.message}", file=sys.stderr)
            return 1

    print(f"Token {token.id[:8]}... is now {token.state.value}")
    return 0


async def list_device(device_id: str) -> int:
    async with AsyncSessionLocal() as session:
        service = TokenOperatorService(TokenStore(session))
        try:
            views = await service.list_device_tokens(device_id)
        except KeyGateError as e:
            print(f"ERROR: {e.message}", file=sys.stderr)
            return 1

    if not views:
        print("No tokens for this device.")
        return 0

    for view in views:
        marker = "*" if view.entitled else " "
        print(
            f"{marker} {view.token_hint}  {view.state:<8}  "
            f"issued {view.issued_at:%Y-%m-%d %H:%M}  expires {view.expires_at:%Y-%m-%d %H:%M}"
        )
    return 0


async def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Revoke KeyGate access tokens")
    parser.add_argument("token_id", nargs="?", help="Token id to revoke")
    parser.add_argument("--reason", help="Reason recorded with the revocation")
    parser.add_argument("--device", help="List tokens of a device instead of revoking")
    args = parser.parse_args(argv)

    try:
        if args.device:
            return await list_device(args.device)
        if not args.token_id:
            parser.error("token_id is required unless --device is given")
        return await revoke(args.token_id, args.reason)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
