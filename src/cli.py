#!/usr/bin/env python3
"""
RevLedger Command Line Interface.

Provides commands for running and managing the distribution ledger:
    - serve: Start the API server
    - check: Verify installation and configuration
    - info: Display system information
    - init: Create the Distributor record
    - register: Register a collection
    - stats: Show a collection's aggregates
    - history: Show a collection's recent distributions
    - reconcile: Replay the event log against stored aggregates

Usage:
    revledger serve [--host HOST] [--port PORT] [--debug]
    revledger init --authority ops-wallet
    revledger register genesis --endpoint https://example.com/x402 --caller ops-wallet
    revledger stats genesis
    revledger --version
"""

import argparse
import json
import os
import sys

# Ensure src is in path when running from source
if os.path.exists(os.path.join(os.path.dirname(__file__), "payment_distributor.py")):
    sys.path.insert(0, os.path.dirname(__file__))

from ledger_config import __version__  # noqa: E402


def _load_env() -> None:
    from dotenv import load_dotenv

    load_dotenv()


def _build_distributor():
    """Build a PaymentDistributor from the environment."""
    from api.state import init_services

    _load_env()
    return init_services()


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def _run_ledger_command(func) -> int:
    """Run a ledger call, printing ledger errors instead of a traceback."""
    from ledger_errors import LedgerError

    try:
        func()
    except LedgerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_serve(args):
    """Start the RevLedger API server."""
    _load_env()

    from monitoring import configure_logging

    configure_logging()

    host = args.host or os.getenv("HOST", "0.0.0.0")
    port = args.port or int(os.getenv("PORT", 5000))
    debug = args.debug or os.getenv("FLASK_DEBUG", "").lower() == "true"

    print(f"Starting RevLedger API server on {host}:{port}")

    from api import create_app

    flask_app = create_app()

    if args.production:
        # Use gunicorn for production
        try:
            import gunicorn.app.base
        except ImportError:
            print("Error: gunicorn not installed. Install with: pip install revledger[production]")
            sys.exit(1)

        class StandaloneApplication(gunicorn.app.base.BaseApplication):
            """Gunicorn WSGI wrapper around the Flask app."""

            def __init__(self, app, options=None):
                self.options = options or {}
                self.application = app
                super().__init__()

            def load_config(self):
                for key, value in self.options.items():
                    if key in self.cfg.settings and value is not None:
                        self.cfg.set(key.lower(), value)

            def load(self):
                return self.application

        options = {
            "bind": f"{host}:{port}",
            # In-memory transfer balances are per process
            "workers": args.workers or int(os.getenv("WORKERS", 1)),
            "worker_class": "sync",
            "timeout": 120,
            "accesslog": "-",
            "errorlog": "-",
        }
        StandaloneApplication(flask_app, options).run()
    else:
        flask_app.run(host=host, port=port, debug=debug)


def cmd_check(args):
    """Check installation and configuration."""
    _load_env()

    print("RevLedger Installation Check")
    print("=" * 40)

    checks = []

    try:
        from ledger_config import LedgerConfig

        LedgerConfig.from_env().validate()
        checks.append(("Configuration", "OK"))
    except Exception as e:
        checks.append(("Configuration", f"FAIL: {e}"))

    try:
        from api import create_app

        create_app(init=False)
        checks.append(("Flask API", "OK"))
    except ImportError as e:
        checks.append(("Flask API", f"FAIL: {e}"))

    try:
        from storage import get_storage_backend

        storage = get_storage_backend()
        backend_name = storage.__class__.__name__
        status = "OK" if storage.is_available() else "WARN (not available)"
        checks.append((f"Storage ({backend_name})", status))
    except Exception as e:
        checks.append(("Storage", f"FAIL: {e}"))

    try:
        import psycopg2  # noqa: F401

        checks.append(("PostgreSQL support", "OK"))
    except ImportError:
        checks.append(("PostgreSQL support", "SKIP (psycopg2 not installed)"))

    try:
        import gunicorn  # noqa: F401

        checks.append(("Production server", "OK"))
    except ImportError:
        checks.append(("Production server", "SKIP (gunicorn not installed)"))

    print()
    all_ok = True
    for name, status in checks:
        icon = "✓" if status == "OK" else ("○" if "SKIP" in status else "✗")
        print(f"  {icon} {name}: {status}")
        if "FAIL" in status:
            all_ok = False

    print()
    if all_ok:
        print("All checks passed!")
        return 0
    print("Some checks failed. See above for details.")
    return 1


def cmd_info(args):
    """Display system information."""
    import platform

    _load_env()

    print("RevLedger System Information")
    print("=" * 40)
    print(f"Version: {__version__}")
    print(f"Python: {platform.python_version()}")
    print(f"Platform: {platform.platform()}")

    print()
    print("Configuration:")
    print(f"  STORAGE_BACKEND: {os.getenv('STORAGE_BACKEND', 'json (default)')}")
    print(f"  DATABASE_URL: {'configured' if os.getenv('DATABASE_URL') else 'not set'}")
    print(f"  LEDGER_FEE_BPS: {os.getenv('LEDGER_FEE_BPS', '250 (default)')}")
    print(f"  LEDGER_REMAINDER_POLICY: {os.getenv('LEDGER_REMAINDER_POLICY', 'retain (default)')}")
    print(f"  LOG_LEVEL: {os.getenv('LOG_LEVEL', 'INFO (default)')}")
    print(f"  LOG_FORMAT: {os.getenv('LOG_FORMAT', 'console (default)')}")

    print()
    print("Storage:")
    try:
        from storage import get_storage_backend

        for key, value in get_storage_backend().get_info().items():
            print(f"  {key}: {value}")
    except Exception as e:
        print(f"  Error: {e}")

    return 0


def cmd_init(args):
    """Create the Distributor record."""
    distributor = _build_distributor()
    return _run_ledger_command(lambda: _print_json(distributor.initialize(args.authority).to_dict()))


def cmd_register(args):
    """Register a collection."""
    distributor = _build_distributor()
    return _run_ledger_command(
        lambda: _print_json(
            distributor.register_collection(
                args.collection_id, args.endpoint, args.model, caller=args.caller
            ).to_dict()
        )
    )


def cmd_stats(args):
    """Show a collection's aggregates."""
    distributor = _build_distributor()
    return _run_ledger_command(lambda: _print_json(distributor.get_stats(args.collection_id).to_dict()))


def cmd_history(args):
    """Show recent distributions for a collection."""
    distributor = _build_distributor()
    return _run_ledger_command(
        lambda: _print_json([
            e.to_dict() for e in distributor.get_distribution_history(args.collection_id, args.limit)
        ])
    )


def cmd_reconcile(args):
    """Replay the event log against stored aggregates."""
    distributor = _build_distributor()
    report = distributor.reconcile()
    _print_json(report.to_dict())
    return 0 if report.is_consistent else 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="revledger",
        description="RevLedger - Revenue Distribution Ledger",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port to bind to (default: 5000)")
    serve_parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    serve_parser.add_argument(
        "--production", action="store_true", help="Use gunicorn for production"
    )
    serve_parser.add_argument("--workers", type=int, help="Number of workers (production mode)")

    subparsers.add_parser("check", help="Check installation and configuration")
    subparsers.add_parser("info", help="Display system information")

    init_parser = subparsers.add_parser("init", help="Create the Distributor record")
    init_parser.add_argument("--authority", required=True, help="Identity allowed to mutate the ledger")

    register_parser = subparsers.add_parser("register", help="Register a collection")
    register_parser.add_argument("collection_id")
    register_parser.add_argument("--endpoint", required=True, help="Payout endpoint")
    register_parser.add_argument("--model", default="equal", help="equal, weighted or creator_split")
    register_parser.add_argument("--caller", required=True, help="Acting identity")

    stats_parser = subparsers.add_parser("stats", help="Show collection aggregates")
    stats_parser.add_argument("collection_id")

    history_parser = subparsers.add_parser("history", help="Show recent distributions")
    history_parser.add_argument("collection_id")
    history_parser.add_argument("--limit", type=int, help="Maximum number of events")

    subparsers.add_parser("reconcile", help="Check aggregates against the event log")

    return parser


COMMANDS = {
    "check": cmd_check,
    "info": cmd_info,
    "init": cmd_init,
    "register": cmd_register,
    "stats": cmd_stats,
    "history": cmd_history,
    "reconcile": cmd_reconcile,
}


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        cmd_serve(args)
    elif args.command in COMMANDS:
        sys.exit(COMMANDS[args.command](args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
