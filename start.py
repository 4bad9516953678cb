import sys
import subprocess
import webbrowser
import time
import logging
from pathlib import Path

from flashstudy.config import configure_logging, get_settings


def main():
    settings = get_settings()
    configure_logging(settings.log_level)
    logging.info("Starting Flashstudy API...")

    # Check if .venv exists
    venv_path = Path(".venv")
    if sys.platform == "win32":
        python_executable = venv_path / "Scripts" / "python.exe"
    else:
        python_executable = venv_path / "bin" / "python"

    if not python_executable.exists():
        logging.info(f"Virtual environment not found at {python_executable}, using {sys.executable}")
        python_executable = sys.executable

    # Run as a module so package imports resolve
    cmd = [str(python_executable), "-m", "uvicorn", "flashstudy.main:app",
           "--port", str(settings.port), "--host", "127.0.0.1"]

    logging.info(f"Running backend: {' '.join(cmd)}")
    process = subprocess.Popen(cmd)
    try:
        # Wait a moment for server to start
        time.sleep(2)
        webbrowser.open(f"http://127.0.0.1:{settings.port}/docs")
        logging.info("API is running. Press Ctrl+C to stop.")
        process.wait()
    except KeyboardInterrupt:
        logging.info("Stopping...")
        process.terminate()


if __name__ == "__main__":
    main()
