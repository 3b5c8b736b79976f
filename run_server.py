#!/usr/bin/env python3
"""
Forum ranks server
Serves the rank API with uvicorn
"""
import logging
import uvicorn
import os
import sys
from config import DEFAULT_HOST, DEFAULT_PORT, LOG_LEVEL, LOG_FORMAT

def main():
    # Change to the directory containing this script
    script_dir = os.path.dirname(os.path.abspath(__file__))
    os.chdir(script_dir)

    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

    print("Starting forum ranks server...")
    print(f"Working directory: {os.getcwd()}")
    print(f"  - API endpoints: http://localhost:{DEFAULT_PORT}/api/*")
    print(f"  - API docs: http://localhost:{DEFAULT_PORT}/docs")
    print()
    print("Press Ctrl+C to stop the server")

    try:
        # Import here to ensure we're in the right directory
        from app import app

        uvicorn.run(
            app,
            host=DEFAULT_HOST,
            port=DEFAULT_PORT,
            reload=False,
            access_log=True,
            log_level=LOG_LEVEL.lower()
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
