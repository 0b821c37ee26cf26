"""
Email Gateway command line.

Runs one mail operation and prints the same text the MCP tools return.

Usage:
    email-gateway accounts
    email-gateway call read_emails --args '{"limit": 5, "unreadOnly": true}'
    email-gateway call send_email --args '{"to": "bob@example.com", "subject": "Hi", "body": "Hello"}'
    email-gateway operations
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .config import configure_logging, load_config
from .services.mail import ConfigurationMissing, MailCoordinator, MailManager, format_result


def parse_arguments(raw: Optional[str]) -> dict:
    """Decode the --args JSON object."""
    if not raw:
        return {}
    try:
        arguments = json.loads(raw)
    except ValueError as e:
        raise SystemExit(f"❌ --args is not valid JSON: {e}")
    if not isinstance(arguments, dict):
        raise SystemExit("❌ --args must be a JSON object")
    return arguments


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="email-gateway",
        description="Email Gateway - send, read, search, delete and reply to email",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s accounts
  %(prog)s call read_emails --args '{"limit": 5}'
  %(prog)s call search_emails --args '{"query": "from:alice"}'
  %(prog)s call delete_email --args '{"messageId": "3"}' --json
"""
    )
    parser.add_argument("--env-file", help="Load variables from this .env file")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("accounts", help="List configured accounts")
    subparsers.add_parser("operations", help="List available operations")

    call = subparsers.add_parser("call", help="Run an operation")
    call.add_argument("operation", help="Operation name, e.g. read_emails")
    call.add_argument("--args", dest="arguments", help="Arguments as a JSON object")
    call.add_argument("--json", action="store_true", help="Print the raw result as JSON")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv(args.env_file or None)
    try:
        config = load_config()
    except ConfigurationMissing as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2
    configure_logging(args.log_level or config.log_level)

    coordinator = MailCoordinator(MailManager(config))

    if args.command == "operations":
        print("\n".join(MailCoordinator.OPERATIONS))
        return 0

    if args.command == "accounts":
        result = asyncio.run(coordinator.list_accounts())
        print(format_result(result))
        return 0 if result.success else 1

    result = asyncio.run(coordinator.dispatch(args.operation, parse_arguments(args.arguments)))
    if args.json:
        print(json.dumps({
            "operation": result.operation,
            "success": result.success,
            "data": result.data,
            "error": result.error,
            "error_type": result.error_type,
        }, indent=2, ensure_ascii=False))
    else:
        print(format_result(result))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
