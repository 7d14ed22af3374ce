"""
Backend startup wrapper for AI Saint.

Run with `aisaint-serve` or `python -m aisaint.start_backend`.
Host and port come from AISAINT_HOST / AISAINT_PORT.
"""
import os
import sys

import uvicorn


def serve() -> None:
    host = os.getenv("AISAINT_HOST", "0.0.0.0")
    port = int(os.getenv("AISAINT_PORT", "8000"))
    print(f"[Backend] Starting AI Saint backend on http://{host}:{port}")
    try:
        uvicorn.run(
            "aisaint.main:app",
            host=host,
            port=port,
            reload=False,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\n[Backend] Shutting down...")
        sys.exit(0)


if __name__ == "__main__":
    serve()
