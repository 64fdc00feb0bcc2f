"""
Operations utilities - CLI tools for gateway administration.

Inspect and reset registration windows, list the operation catalog, seed
apps and tokens for development, and run the API server.
"""

import argparse
import json
import secrets
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add the repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from gateway.core import config
from gateway.core.dao import create_app, create_token, delete_ip_record, get_ip_record, list_ip_records
from gateway.core.rate_limit import count_recent, to_millis, window_start
from gateway.core.registry import registry
from util.logging import logger


def _format_ms(ms):
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def _recent_uses(uses):
    allowed_uses, window_size, window_unit = config.get_registration_limits()
    try:
        since = window_start(datetime.now(timezone.utc), window_size, window_unit)
    except (TypeError, ValueError):
        return None
    return count_recent(uses, to_millis(since))


def ip_show_command(args):
    """Show the recorded registration uses of one IP."""
    record = get_ip_record(args.ip)
    if record is None:
        print(f"No registrations recorded for {args.ip}")
        return

    if args.json:
        print(json.dumps(record.to_dict(), indent=2))
        return

    print(f"🔍 Registration window for {record.key}")
    print(f"   Recorded uses: {len(record.uses)}")
    recent = _recent_uses(record.uses)
    if recent is None:
        print("   Uses in current window: unknown (rate limiter misconfigured)")
    else:
        print(f"   Uses in current window: {recent}")
    for use in record.uses[-10:]:
        print(f"     - {_format_ms(use)}")


def ip_list_command(args):
    """List every IP with recorded registrations."""
    records = list_ip_records()
    if args.json:
        print(json.dumps([r.to_dict() for r in records], indent=2))
        return

    if not records:
        print("No registrations recorded")
        return
    for record in records:
        print(f"{record.key}\t{len(record.uses)} uses\tlast {_format_ms(max(record.uses)) if record.uses else '-'}")


def ip_reset_command(args):
    """Forget the registration window of one IP."""
    if not args.force:
        response = input(f"Reset registration window for {args.ip}? (yes/no): ").strip().lower()
        if response != "yes":
            print("Reset cancelled.")
            sys.exit(0)

    if delete_ip_record(args.ip):
        logger.info(f"Registration window reset for {args.ip}")
        print(f"✅ Registration window reset for {args.ip}")
    else:
        print(f"No registrations recorded for {args.ip}")


def operations_command(args):
    """List known operations with their broadcast type and author field."""
    rows = []
    for name in registry.names():
        schema = registry.resolve(name)
        rows.append({
            "name": schema.name,
            "broadcast_type": schema.broadcast_type,
            "author_field": schema.author_field,
            "roles": list(schema.roles),
            "authorized_by_default": schema.name in config.AUTHORIZED_OPERATIONS,
        })

    if args.json:
        print(json.dumps(rows, indent=2))
        return

    for row in rows:
        marker = "*" if row["authorized_by_default"] else " "
        mapped = f" -> {row['broadcast_type']}" if row["broadcast_type"] != row["name"] else ""
        print(f"{marker} {row['name']}{mapped}  (author: {row['author_field'] or '-'}, roles: {', '.join(row['roles'])})")


def issue_token_command(args):
    """Store an access token for development; issuance proper happens elsewhere."""
    if args.role == "app" and not args.client_id:
        print("❌ ERROR: --client-id is required for app tokens")
        sys.exit(1)

    if args.client_id and args.owner:
        create_app(args.client_id, args.owner)

    token = args.token or secrets.token_urlsafe(32)
    scope = [s.strip() for s in args.scope.split(",") if s.strip()] if args.scope else []
    create_token(token, args.user, role=args.role, client_id=args.client_id, scope=scope)
    logger.info(f"Issued {args.role} token for {args.user} (app {args.client_id})")
    print(token)


def serve_command(args):
    """Run the API with uvicorn."""
    import uvicorn

    issues = config.validate_rate_limit_config()
    for issue in issues:
        print(f"⚠️  {issue}")
    uvicorn.run("gateway.api.main:app", host=args.host, port=args.port, reload=args.reload)


def main():
    """Main CLI entry point for operations utilities."""
    parser = argparse.ArgumentParser(
        description="Broadcast gateway operations CLI utilities",
        prog="python scripts/ops_util.py"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    show_parser = subparsers.add_parser("ip-show", help="Show registration uses of one IP")
    show_parser.add_argument("ip")
    show_parser.add_argument("--json", action="store_true", help="Output in JSON format")
    show_parser.set_defaults(func=ip_show_command)

    list_parser = subparsers.add_parser("ip-list", help="List IPs with recorded registrations")
    list_parser.add_argument("--json", action="store_true", help="Output in JSON format")
    list_parser.set_defaults(func=ip_list_command)

    reset_parser = subparsers.add_parser("ip-reset", help="Reset the registration window of one IP")
    reset_parser.add_argument("ip")
    reset_parser.add_argument("--force", action="store_true", help="Reset without prompting")
    reset_parser.set_defaults(func=ip_reset_command)

    ops_parser = subparsers.add_parser("operations", help="List known operations")
    ops_parser.add_argument("--json", action="store_true", help="Output in JSON format")
    ops_parser.set_defaults(func=operations_command)

    token_parser = subparsers.add_parser("issue-token", help="Store a development access token")
    token_parser.add_argument("user")
    token_parser.add_argument("--role", choices=["app", "user"], default="app")
    token_parser.add_argument("--client-id")
    token_parser.add_argument("--owner", help="Create the app with this owner first")
    token_parser.add_argument("--scope", help="Comma separated operations; empty grants all authorized operations")
    token_parser.add_argument("--token", help="Use this token value instead of a random one")
    token_parser.set_defaults(func=issue_token_command)

    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true")
    serve_parser.set_defaults(func=serve_command)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Run the selected command
    args.func(args)


if __name__ == "__main__":
    main()
