"""
main.py — Scout exam CBT launcher

Desktop mode (default): free local port, app-style browser window.
Lab mode (CBT_OPEN_BROWSER=0): serve on DEFAULT_HOST:DEFAULT_PORT for the
tablets on the local network and block until interrupted.
"""

import os
import socket
import subprocess
import sys
import time
import threading
import logging
import webbrowser

# ── import path (must come first) ────────────────────────────────────────────
_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

from config import BASE_DIR, DATA_DIR, DEFAULT_HOST, DEFAULT_PORT, LOG_FILE

logger = logging.getLogger("scout_exam")

_BROWSERS = [
    r"C:\Program Files\Google\Chrome\Application\chrome.exe",
    r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
    r"C:\Program Files\Microsoft\Edge\Application\msedge.exe",
    r"C:\Program Files (x86)\Microsoft\Edge\Application\msedge.exe",
]


def _configure_logging() -> None:
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    try:
        handlers = [logging.FileHandler(LOG_FILE, encoding="utf-8"), logging.StreamHandler(sys.stdout)]
    except PermissionError:
        # log file held by a previous instance
        handlers = [logging.StreamHandler(sys.stdout)]
    logging.basicConfig(level=logging.INFO, format=fmt, handlers=handlers)


# ── network helpers ──────────────────────────────────────────────────────────

def _pick_port(preferred: int) -> int:
    """`preferred` if it is free on DEFAULT_HOST, else any free port."""
    for candidate in (preferred, 0):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind((DEFAULT_HOST, candidate))
            except OSError:
                continue
            return s.getsockname()[1]
    raise RuntimeError("no free port available")


def _server_up(port: int, timeout: float = 15.0) -> bool:
    host = "127.0.0.1" if DEFAULT_HOST == "0.0.0.0" else DEFAULT_HOST
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            with socket.create_connection((host, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def _launch_browser(url: str) -> None:
    """Chromium app window when installed (no tabs to switch to), else the default browser."""
    path = next((p for p in _BROWSERS if os.path.exists(p)), None)
    if path is None:
        webbrowser.open(url)
        return
    logger.info(f"Launching browser: {path}")
    subprocess.Popen([path, f"--app={url}", "--no-first-run", "--window-size=1280,800"])


def _serve(port: int) -> None:
    import uvicorn
    from api.app import create_app

    logger.info(f"Serving on {DEFAULT_HOST}:{port}")
    try:
        uvicorn.run(create_app(), host=DEFAULT_HOST, port=port, log_level="warning")
    except Exception:
        logger.exception("Server stopped with an error")


# ── entry point ──────────────────────────────────────────────────────────────

def main() -> int:
    _configure_logging()
    os.chdir(BASE_DIR)
    os.makedirs(DATA_DIR, exist_ok=True)
    open_browser = os.getenv("CBT_OPEN_BROWSER", "1") != "0"
    logger.info("=== Scout Exam CBT started ===")

    port = _pick_port(DEFAULT_PORT)
    threading.Thread(target=_serve, args=(port,), daemon=True).start()

    if not _server_up(port):
        logger.error("Server did not come up in time. Is another instance still running?")
        return 1

    if open_browser:
        _launch_browser(f"http://127.0.0.1:{port}")
    else:
        logger.info(f"Students can connect to http://<this machine>:{port}")

    try:
        while True:
            time.sleep(10)
    except KeyboardInterrupt:
        logger.info("Stopped by user.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
