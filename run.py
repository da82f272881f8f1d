"""
Plantwatch — Standalone Server

Boots the dashboard from a single Python command:
  python run.py

Starts:
  - FastAPI API on APP_PORT (default 8000) with the embedded dashboard
  - ThingSpeak poll loop (every POLL_INTERVAL_S seconds)
  - In-memory device registry, nothing persisted

Usage:
  pip install -e .
  python run.py
"""
import os
import sys

# Set working directory
project_root = os.path.dirname(os.path.abspath(__file__))
os.chdir(project_root)

# Add service paths
sys.path.insert(0, os.path.join(project_root, "services", "api"))

if __name__ == "__main__":
    import uvicorn
    from config import settings

    print("=" * 60)
    print("  PLANTWATCH — Device Telemetry Dashboard")
    print("=" * 60)
    print(f"  UI:       http://localhost:{settings.APP_PORT}/ui")
    print(f"  Login:    http://localhost:{settings.APP_PORT}/login")
    print(f"  Health:   http://localhost:{settings.APP_PORT}/health")
    print(f"  Metrics:  http://localhost:{settings.APP_PORT}/metrics")
    print(f"  Groups:   {', '.join(settings.CHANNEL_GROUPS)}")
    print("=" * 60)

    uvicorn.run(
        "main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.APP_DEBUG,
        reload_dirs=[os.path.join(project_root, "services", "api")],
        app_dir=os.path.join(project_root, "services", "api"),
    )
