"""
Multimeter Metrics API Server

Serves the in-process metrics registry tree as JSON.

Environment Variables:
    MULTIMETER_EXPORT_ENABLED: Serve metrics snapshots (default: true)
    MULTIMETER_REPORT_INTERVAL: Seconds between snapshot log lines (default: 0, disabled)
    MULTIMETER_DEFAULT_GROUP: Root group for instance-bound objects (default: multimeter)
    MULTIMETER_DEFAULT_SCOPE: Root scope for instance-bound objects (default: instances)
    MULTIMETER_LOG_LEVEL: Logging level (default: INFO)
    MULTIMETER_LOG_FILE: Optional rotating log file path
    HOST: Server host address (default: 0.0.0.0)
    PORT: Server port (default: 8005)
    DEBUG: Enable debug mode with auto-reload (default: false)

CLI Usage:
    python main.py

    # Log a snapshot every 30 seconds
    MULTIMETER_REPORT_INTERVAL=30 python main.py
"""

import uvicorn

from multimeter.core.config import settings

if __name__ == "__main__":
    port = settings.PORT
    host = settings.HOST

    print(f"Starting {settings.PROJECT_NAME} on {host}:{port}")
    print(f"Metrics export: {'enabled' if settings.EXPORT_ENABLED else 'disabled'}")

    reload_enabled = bool(settings.DEBUG)
    reload_dirs = None
    if reload_enabled:
        from pathlib import Path

        reload_dirs = [str(Path(__file__).resolve().parent / "multimeter")]

    uvicorn.run(
        "multimeter.app:app",
        host=host,
        port=port,
        reload=reload_enabled,
        reload_dirs=reload_dirs,
    )
