#!/usr/bin/env python3
"""
Loan Amortization Engine Entry Point

Starts the FastAPI server with the amortization engine.
"""

import sys

from amortizer.api import run_server
from amortizer.config import get_config


if __name__ == "__main__":
    settings = get_config()
    print("Starting Loan Amortization Engine...")
    print(f"Storage backend: {settings.storage_backend}")
    print(f"API available at: http://localhost:{settings.api_port}")
    print(f"Documentation at: http://localhost:{settings.api_port}/docs")
    print()

    try:
        run_server(debug=False)
    except KeyboardInterrupt:
        print("\nShutting down Loan Amortization Engine...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
