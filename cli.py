#!/usr/bin/env python3
"""
Command-line interface for the order fulfillment service.

Usage:
    uv run python cli.py [command] [options]

Commands:
    demo        Run a checkout flow in-process
    sign        Compute a gateway signature (manual prepaid testing)
    test        Run the test suite
    serve       Start the API server

Examples:
    uv run python cli.py demo cod
    uv run python cli.py demo prepaid
    uv run python cli.py sign order_abc pay_xyz --secret s3cret
    uv run python cli.py serve --reload
"""

import argparse
import os
import subprocess
import sys


def run_demo(flow: str) -> None:
    """Run a demo checkout flow."""
    if flow == "cod":
        from api.demo import run_cod_demo
        run_cod_demo()
    elif flow == "prepaid":
        from api.demo import run_prepaid_demo
        run_prepaid_demo()
    elif flow == "all":
        from api.demo import run_cod_demo, run_prepaid_demo
        run_cod_demo()
        run_prepaid_demo()
    else:
        print(f"Unknown flow: {flow}")
        sys.exit(1)


def run_sign(gateway_order_id: str, gateway_payment_id: str, secret: str) -> None:
    """Print the signature the gateway would send for this payment."""
    from ordering.payments import sign

    if not secret:
        print("No secret given and RAZORPAY_KEY_SECRET is not set")
        sys.exit(1)
    print(sign(gateway_order_id, gateway_payment_id, secret))


def run_tests(args: list[str]) -> None:
    """Run the test suite."""
    cmd = ["uv", "run", "pytest"] + args
    subprocess.run(cmd)


def run_server(host: str, port: int, reload: bool) -> None:
    """Start the API server."""
    cmd = ["uv", "run", "uvicorn", "api.main:app", f"--host={host}", f"--port={port}"]
    if reload:
        cmd.append("--reload")

    print(f"Starting server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    subprocess.run(cmd)


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Order Fulfillment Service CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo cod
  %(prog)s demo all
  %(prog)s sign order_abc pay_xyz --secret s3cret
  %(prog)s test -v
  %(prog)s serve --reload
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Run a checkout flow in-process")
    demo_parser.add_argument(
        "flow",
        choices=["cod", "prepaid", "all"],
        help="Which checkout flow to run",
    )

    # Sign command
    sign_parser = subparsers.add_parser("sign", help="Compute a gateway payment signature")
    sign_parser.add_argument("gateway_order_id", help="Gateway order id (order_...)")
    sign_parser.add_argument("gateway_payment_id", help="Gateway payment id (pay_...)")
    sign_parser.add_argument(
        "--secret",
        default=os.getenv("RAZORPAY_KEY_SECRET", ""),
        help="Shared secret (defaults to RAZORPAY_KEY_SECRET)",
    )

    # Test command
    test_parser = subparsers.add_parser("test", help="Run the test suite")
    test_parser.add_argument(
        "pytest_args",
        nargs="*",
        default=[],
        help="Arguments to pass to pytest",
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    if args.command == "demo":
        run_demo(args.flow)
    elif args.command == "sign":
        run_sign(args.gateway_order_id, args.gateway_payment_id, args.secret)
    elif args.command == "test":
        run_tests(args.pytest_args)
    elif args.command == "serve":
        run_server(args.host, args.port, args.reload)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
