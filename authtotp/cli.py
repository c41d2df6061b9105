#!/usr/bin/env python3
"""
AUTHTOTP command line tool.

Usage:
    # Generate a master key for TOTP_MASTER_KEY
    authtotp keygen

    # Print the current code for a base32 secret
    authtotp code --secret JBSWY3DPEHPK3PXP

    # Run the API server
    authtotp serve --port 8080

    # Interactive walkthrough against a running server
    authtotp demo --base-url http://localhost:8080
"""
import argparse
import io
import sys
import time
from typing import Optional

import httpx
import qrcode

from .auth.errors import InvalidSecretEncoding
from .auth.totp import DEFAULT_DIGITS, DEFAULT_PERIOD, OTPGenerator
from .security.cipher import generate_master_key

DEFAULT_BASE_URL = "http://localhost:8080"


def render_qr_ascii(data: str) -> str:
    """Render a QR code as text for the terminal."""
    qr = qrcode.QRCode(border=1)
    qr.add_data(data)
    qr.make(fit=True)
    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue()


# ============================================
# Commands
# ============================================

def cmd_keygen(args) -> int:
    print(generate_master_key().hex())
    return 0


def cmd_code(args) -> int:
    generator = OTPGenerator(digits=args.digits, period=args.period)
    timestamp = args.time if args.time is not None else time.time()
    try:
        code = generator.generate_code_from_base32(args.secret, timestamp)
    except InvalidSecretEncoding as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"{code}  (valid ~{generator.time_remaining(timestamp):2d}s)")
    return 0


def cmd_serve(args) -> int:
    import uvicorn
    from .api.main import create_app
    from .utils.config import load_settings

    settings = load_settings()
    uvicorn.run(
        create_app(settings=settings),
        host=args.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def _post(client: httpx.Client, path: str, payload: dict) -> Optional[httpx.Response]:
    try:
        return client.post(path, json=payload)
    except httpx.HTTPError as e:
        print(f"Request to {path} failed: {e}")
        return None


def cmd_demo(args) -> int:
    """Interactive enroll -> verify -> validate/recover loop."""
    print("=== AUTHTOTP Interactive Demo ===")
    username = input("Enter a username for this session: ").strip()
    if not username:
        print("Username cannot be empty")
        return 1

    with httpx.Client(base_url=args.base_url, timeout=10) as client:
        # 1. Enroll
        print(f"\n[1] Enrolling user '{username}'...")
        resp = _post(client, "/totp/enroll", {"user_id": username})
        if resp is None:
            print("Make sure the server is running: authtotp serve")
            return 1
        if resp.status_code != 201:
            print(f"Enrollment failed: {resp.text}")
            return 1

        data = resp.json()
        print(">>> ENROLLMENT SUCCESSFUL <<<")
        print(f"Secret: {data['secret']}")
        print("Scan the QR code below with your Authenticator App:\n")
        print(render_qr_ascii(data["provisioning_uri"]))
        print("Recovery Codes (SAVE THESE!):")
        for code in data["recovery_codes"]:
            print(f" - {code}")

        # 2. Verify
        print("\n[2] Verification (First Time)")
        code = input("Please enter the code from your app to enable 2FA: ").strip()
        resp = _post(client, "/totp/verify", {"user_id": username, "code": code})
        if resp is None or resp.status_code != 200:
            print(f"Verification failed: {resp.text if resp is not None else 'no response'}")
            return 1
        print(">>> 2FA ENABLED SUCCESSFULLY! <<<")

        # 3. Validation loop
        while True:
            print("\n[3] Test Validation / Recovery")
            print("Type a 6-digit code to validate, or a recovery code to recover.")
            print("Type 'exit' to quit.")
            value = input("Input: ").strip()

            if value == "exit":
                break

            path = "/totp/validate" if len(value) == DEFAULT_DIGITS else "/totp/recover"
            resp = _post(client, path, {"user_id": username, "code": value})
            if resp is not None:
                print(f"Status: {resp.status_code} | Body: {resp.text}")

    return 0


# ============================================
# Parser
# ============================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authtotp",
        description="TOTP second factor service and tools.",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    pk = sub.add_parser("keygen", help="Print a new hex master key for TOTP_MASTER_KEY")
    pk.set_defaults(func=cmd_keygen)

    pc = sub.add_parser("code", help="Print the current TOTP code for a base32 secret")
    pc.add_argument("--secret", required=True, help="Base32 secret")
    pc.add_argument("--time", type=float, default=None, help="Unix time (default: now)")
    pc.add_argument("--digits", type=int, default=DEFAULT_DIGITS)
    pc.add_argument("--period", type=int, default=DEFAULT_PERIOD)
    pc.set_defaults(func=cmd_code)

    ps = sub.add_parser("serve", help="Run the API server")
    ps.add_argument("--host", default="0.0.0.0")
    ps.add_argument("--port", type=int, default=None, help="HTTP port (default: PORT setting)")
    ps.set_defaults(func=cmd_serve)

    pd = sub.add_parser("demo", help="Interactive demo against a running server")
    pd.add_argument("--base-url", default=DEFAULT_BASE_URL)
    pd.set_defaults(func=cmd_demo)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
