"""
Run the QuickDesk API with uvicorn.

Usage:
    python run.py
    python run.py --reload            # Development mode with auto-reload
    python run.py --port 8080         # Custom port
    python run.py --no-worker         # Serve the API without delivering emails
"""
import argparse
import os
import uvicorn


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the QuickDesk API server")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=5000, help="Port to bind to (default: 5000)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (default: 1, ignored if --reload is set)"
    )
    parser.add_argument(
        "--no-worker",
        action="store_true",
        help="Do not start the notification worker in this process"
    )
    return parser


def main():
    args = build_parser().parse_args()

    if args.no_worker:
        # Read by Settings when quickdesk.main is imported
        os.environ["NOTIFICATION_WORKER_ENABLED"] = "false"

    print("Starting QuickDesk API server...")
    print(f"  Host: {args.host}")
    print(f"  Port: {args.port}")
    print(f"  Reload: {args.reload}")
    print(f"  Notification worker: {'off' if args.no_worker else 'on'}")
    if not args.reload and args.workers > 1:
        print(f"  Workers: {args.workers}")
    print()

    uvicorn.run(
        "quickdesk.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1 if args.reload else args.workers
    )


if __name__ == "__main__":
    main()
