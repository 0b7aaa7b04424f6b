"""Newton Chat launcher.

Two layouts are supported, picked with ``RUN_MODE``:

- ``integrated`` (default): one uvicorn server on ``PORT`` serves the relay
  under ``/api`` and the NiceGUI chat page at ``/``.
- ``separate``: the relay runs on ``PORT`` and the chat page on
  ``UI_PORT``; the page reaches the relay through ``API_BASE_URL``.

Settings are read from the environment after loading ``.env``.
"""

import logging
import os
import subprocess
import sys
import time

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

DEFAULT_PORT = 8000
DEFAULT_UI_PORT = 8080


def _relay_url(host: str, port: int) -> str:
    """Address the chat page should use to reach a relay bound to host:port."""
    reachable = "localhost" if host in ("0.0.0.0", "::") else host
    return f"http://{reachable}:{port}"


def run_integrated(host: str, port: int) -> None:
    """Serve the relay and the chat page from one process."""
    # Read by the chat page at import
    os.environ.setdefault("API_BASE_URL", _relay_url(host, port))

    import uvicorn
    from nicegui import ui

    from newton_chat.api.app import create_app
    from newton_chat.ui.chat_page import chat_page  # noqa: F401 - registers the page

    app = create_app()
    ui.run_with(
        app,
        title="Newton AI",
        storage_secret=os.getenv("NICEGUI_STORAGE_SECRET", "newton-chat-secret"),
    )

    logger.info(f"Relaying to Ollama at {os.getenv('OLLAMA_URL', 'http://localhost:11434')}")
    logger.info(f"Chat UI available at {_relay_url(host, port)}/")
    uvicorn.run(app, host=host, port=port, log_level=os.getenv("LOG_LEVEL", "info").lower())


def run_separate(host: str, port: int, ui_port: int) -> None:
    """Run the relay and the chat page as two child processes.

    Stops both as soon as either exits.
    """
    relay_cmd = [
        sys.executable, "-m", "uvicorn", "newton_chat.api.app:app",
        "--host", host, "--port", str(port),
    ]  # fmt: skip
    ui_env = {
        **os.environ,
        "HOST": host,
        "UI_PORT": str(ui_port),
        "API_BASE_URL": os.getenv("API_BASE_URL", _relay_url(host, port)),
    }

    logger.info(f"Starting relay on {_relay_url(host, port)}")
    logger.info(f"Starting chat UI on {_relay_url(host, ui_port)}, relay at {ui_env['API_BASE_URL']}")

    relay_proc = subprocess.Popen(relay_cmd)
    ui_proc = subprocess.Popen([sys.executable, "-m", "newton_chat.ui.chat_page"], env=ui_env)
    processes = (relay_proc, ui_proc)
    try:
        while all(proc.poll() is None for proc in processes):
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        for proc in processes:
            if proc.poll() is None:
                proc.terminate()
        for proc in processes:
            proc.wait()


def main() -> None:
    """Console entry point."""
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", str(DEFAULT_PORT)))
    mode = os.getenv("RUN_MODE", "integrated").lower()

    logger.info(f"Starting Newton Chat in {mode} mode")
    if mode == "separate":
        run_separate(host, port, int(os.getenv("UI_PORT", str(DEFAULT_UI_PORT))))
    else:
        run_integrated(host, port)


if __name__ == "__main__":
    main()
