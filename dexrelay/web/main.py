"""
Web server launcher
"""

import os

import uvicorn


def dexrelay_main() -> None:
    """Start the FastAPI service with uvicorn."""
    host = os.getenv("DEXRELAY_HOST", "0.0.0.0")
    port = int(os.getenv("DEXRELAY_PORT", "8000"))
    reload = os.getenv("DEXRELAY_RELOAD", "false").lower() == "true"

    uvicorn.run("dexrelay.web.app:create_app", factory=True, host=host, port=port, reload=reload, log_level="info")


if __name__ == "__main__":
    dexrelay_main()
