#!/usr/bin/env python3
"""
Development server launcher for the StudyFlow API.

This script starts the FastAPI server with appropriate settings for development.
For production, you'd use a proper ASGI server deployment.
"""

import logging
from pathlib import Path

import uvicorn

project_root = Path(__file__).parent
package_path = project_root / "studyflow"

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger(__name__).info("Starting StudyFlow API at http://localhost:8000 (docs at /docs)")

    uvicorn.run(
        "studyflow.api.main:app",
        host="0.0.0.0",  # Accept connections from any IP
        port=8000,
        reload=True,     # Auto-reload on code changes (development only)
        reload_dirs=[str(package_path)],  # Only watch the package
        log_level="info"
    )
