#!/usr/bin/env python3
"""
NextMove Portal API Startup Script

Starts the portal FastAPI server with auto-reload for local development.
"""

import sys
from pathlib import Path

import uvicorn


def main():
    """Start the portal API server."""
    print("Starting NextMove Portal API...")
    print("Documentation:")
    print("   Swagger UI:  http://localhost:8000/docs")
    print("   ReDoc:       http://localhost:8000/redoc")
    print("")

    env_file = Path(".env")
    if not env_file.exists():
        print("WARNING: No .env file found!")
        print("   Run generate_keys.py to create one from .env.template, or export:")
        print("   DATABASE_URL, JWT_SECRET, TOKEN_ENCRYPTION_KEY")
        print("")

    try:
        uvicorn.run(
            "portal.main:app",
            host="0.0.0.0",
            port=8000,
            reload=True,
            reload_dirs=["portal"],
            log_level="info"
        )
    except KeyboardInterrupt:
        print("\nShutting down portal API server...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
