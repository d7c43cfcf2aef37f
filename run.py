#!/usr/bin/env python3
"""
Run script for the Smart School API.
This script launches the FastAPI server built by school_core.main.create_app.
"""
import os
import sys
import traceback

import uvicorn

if __name__ == "__main__":
    try:
        port = int(os.getenv("PORT", "5001"))
        print("Starting Smart School API server...")
        print(f"Access the API at http://localhost:{port}")
        print(f"API documentation at http://localhost:{port}/docs")

        uvicorn.run(
            "school_core.main:create_app",
            factory=True,
            host=os.getenv("HOST", "0.0.0.0"),
            port=port,
            reload=os.getenv("APP_ENV", "development") == "development",
            log_level=os.getenv("LOG_LEVEL", "info").lower(),
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)
