import pathlib
import sys

import pytest
from fastapi import FastAPI, Request

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from orderbot.app_logging import init_logging
from orderbot.config import reset_settings_cache
from orderbot.rate_limit import limiter


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        @app.get("/health")
        async def health():
            return {"status": "ok"}

        init_logging(app)
        return app

    return _create_app


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    reset_settings_cache()
    limiter.reset()
    yield
    reset_settings_cache()


