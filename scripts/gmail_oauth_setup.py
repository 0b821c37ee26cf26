#!/usr/bin/env python3
"""
Gmail OAuth Setup Script

Obtains a refresh token for the Gmail provider and prints the .env lines
the gateway reads. Supports both automatic (browser) and manual (headless)
authorization flows.

Usage:
    python gmail_oauth_setup.py credentials.json            # Authorize (tries browser)
    python gmail_oauth_setup.py credentials.json --manual   # Authorize (headless/manual)
    python gmail_oauth_setup.py credentials.json --env-file .env
"""

import argparse
import sys
from pathlib import Path

from google_auth_oauthlib.flow import Flow, InstalledAppFlow

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://mail.google.com/",
]
REDIRECT_PORT = 8085
REDIRECT_URI = f"http://localhost:{REDIRECT_PORT}"


def env_lines(creds) -> list:
    """The GMAIL_* variables for a set of authorized user credentials."""
    if not creds.refresh_token:
        raise ValueError("No refresh token returned; revoke the app's access and authorize again")
    return [
        "EMAIL_PROVIDER=gmail",
        f"GMAIL_CLIENT_ID={creds.client_id}",
        f"GMAIL_CLIENT_SECRET={creds.client_secret}",
        f"GMAIL_REFRESH_TOKEN={creds.refresh_token}",
    ]


def authorize_manual(credentials_file: Path):
    """Manual OAuth flow for headless environments."""
    flow = Flow.from_client_secrets_file(
        str(credentials_file),
        scopes=SCOPES,
        redirect_uri=REDIRECT_URI
    )

    auth_url, _ = flow.authorization_url(
        access_type="offline",
        include_granted_scopes="true",
        prompt="consent"
    )

    print("=" * 60)
    print("STEP 1: Open this URL in a browser:\n")
    print(auth_url)
    print("\n" + "=" * 60)
    print("\nSTEP 2: After authorizing, you'll be redirected to localhost")
    print("        (the page won't load - that's expected)")
    print("\nSTEP 3: Copy the FULL URL from your browser's address bar")
    print(f"        It will look like: {REDIRECT_URI}/?state=...&code=...")
    print("\n" + "=" * 60)

    redirect_response = input("\nPaste the full redirect URL here: ").strip()
    if not redirect_response:
        raise ValueError("No URL provided")

    flow.fetch_token(authorization_response=redirect_response)
    return flow.credentials


def authorize_browser(credentials_file: Path):
    """Local-server OAuth flow; opens the consent page in a browser."""
    flow = InstalledAppFlow.from_client_secrets_file(
        str(credentials_file),
        SCOPES,
        redirect_uri=REDIRECT_URI
    )
    return flow.run_local_server(
        port=REDIRECT_PORT,
        prompt="consent",
        access_type="offline"
    )


def write_env(env_file: Path, lines: list) -> None:
    """Replace any existing GMAIL_*/EMAIL_PROVIDER lines in env_file."""
    keys = {line.split("=", 1)[0] for line in lines}
    kept = []
    if env_file.exists():
        kept = [
            line for line in env_file.read_text().splitlines()
            if line.split("=", 1)[0].strip() not in keys
        ]
    env_file.write_text("\n".join(kept + lines) + "\n")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Gmail OAuth Setup - prints GMAIL_* variables for the Email Gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Create an OAuth client of type "Desktop app" in Google Cloud Console,
enable the Gmail API and download its JSON as credentials.json.

Examples:
  %(prog)s credentials.json               Authorize (browser)
  %(prog)s credentials.json --manual      Authorize (headless)
  %(prog)s credentials.json --env-file .env
"""
    )
    parser.add_argument("credentials", type=Path, help="OAuth client secrets JSON file")
    parser.add_argument(
        "--manual",
        action="store_true",
        help="Use manual flow (for headless environments)"
    )
    parser.add_argument("--env-file", type=Path, help="Write the variables into this .env file")
    args = parser.parse_args(argv)

    if not args.credentials.exists():
        print(f"❌ Credentials file not found: {args.credentials}")
        return 1

    print("🔧 Setting up: Gmail")
    try:
        if args.manual:
            creds = authorize_manual(args.credentials)
        else:
            print("\n🌐 Starting OAuth flow (browser)...")
            try:
                creds = authorize_browser(args.credentials)
            except OSError as e:
                print(f"\n⚠️  Browser flow failed: {e}")
                print("   Falling back to manual flow...\n")
                creds = authorize_manual(args.credentials)
        lines = env_lines(creds)
    except Exception as e:
        print(f"\n❌ Authorization failed: {e}")
        return 1

    if args.env_file:
        write_env(args.env_file, lines)
        print(f"\n✅ Gmail variables written to {args.env_file}")
    else:
        print("\n✅ Add these lines to your .env:\n")
        print("\n".join(lines))
    return 0


if __name__ == "__main__":
    sys.exit(main())
