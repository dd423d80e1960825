from __future__ import annotations

import os

import uvicorn

from prompt_request.core.app_factory import create_app

app = create_app()


def run() -> None:
    """Console entry point: serve ``app`` with uvicorn on HOST/PORT."""
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_config=None,
    )


if __name__ == "__main__":
    run()
