#!/usr/bin/env python3
"""
ChatTranslate Application Launcher

Starts the FastAPI backend with uvicorn.
"""
import os
import socket
import subprocess
import sys

from dotenv import load_dotenv

# Load .env file first
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
env_path = os.path.join(project_root, ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)
    print(f"[Config] Loaded environment from {env_path}")

# Configuration (read after .env so its values apply)
sys.path.insert(0, project_root)
from chattranslate.config import DEBUG, HOST, PORT


def is_port_in_use(port: int) -> bool:
    """Check if a port is already in use."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(('localhost', port)) == 0


def main():
    print("=" * 50)
    print("  ChatTranslate - Chat Message Translation API")
    print("=" * 50)
    print()

    if is_port_in_use(PORT):
        print(f"ERROR: Port {PORT} is already in use")
        print("  Backend may already be running or another service is using this port")
        sys.exit(1)

    command = [
        sys.executable, "-m", "uvicorn", "chattranslate.web.main:app",
        "--host", HOST,
        "--port", str(PORT),
    ]
    if DEBUG:
        command.append("--reload")

    print(f"  Backend API:  http://localhost:{PORT}")
    print(f"  API Docs:     http://localhost:{PORT}/docs")
    print()
    print("  Press Ctrl+C to stop")
    print()

    backend = None
    try:
        backend = subprocess.Popen(command, cwd=project_root, stdout=sys.stdout, stderr=sys.stderr)
        backend.wait()
    except KeyboardInterrupt:
        print()
        print("[Shutting Down]")
    finally:
        if backend and backend.poll() is None:
            backend.terminate()
            try:
                backend.wait(timeout=5)
            except subprocess.TimeoutExpired:
                backend.kill()
        print("  ✓ Server stopped")


if __name__ == "__main__":
    main()
