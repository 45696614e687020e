"""
Run the workflow API with uvicorn.

Usage:
    python run.py
    python run.py --reload          # Development mode with auto-reload
    python run.py --port 8080       # Custom port
    python run.py --store memory    # No MongoDB; cases live in process memory
"""
import argparse
import os
import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Run the housing subsidy workflow API server")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument(
        "--store",
        choices=["mongo", "memory"],
        default=None,
        help="Override STORE_BACKEND for this run"
    )

    args = parser.parse_args()

    # Settings are read at import time, so the override must be in the environment first
    if args.store:
        os.environ["STORE_BACKEND"] = args.store

    print("Starting housing subsidy workflow API server...")
    print(f"  Host: {args.host}")
    print(f"  Port: {args.port}")
    print(f"  Reload: {args.reload}")
    print(f"  Store: {os.environ.get('STORE_BACKEND', 'from settings')}")
    print()

    # The in-memory store is per process, so a single worker only
    uvicorn.run(
        "subsidy_workflow.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
