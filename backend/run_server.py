"""Standalone script to run the API server.

Run from the ``backend`` directory:
    python run_server.py

Or with uvicorn directly:
    uvicorn agent_console.main:app --reload
"""

import os

import uvicorn


def main() -> None:
    """Run the FastAPI app with uvicorn."""
    uvicorn.run(
        "agent_console.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("ENVIRONMENT", "development") == "development",
    )


if __name__ == "__main__":
    main()
