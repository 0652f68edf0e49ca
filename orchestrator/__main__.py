"""Run the orchestrator API under uvicorn."""

from __future__ import annotations

import os

import uvicorn


def main() -> None:
    host = os.getenv("ORCHESTRATOR_HOST", os.getenv("HOST", "127.0.0.1"))
    port = int(os.getenv("ORCHESTRATOR_PORT", os.getenv("PORT", "8080")))
    reload_enabled = os.getenv("ORCHESTRATOR_RELOAD", "false").lower() == "true"

    uvicorn.run("orchestrator.main:app", host=host, port=port, reload=reload_enabled)


if __name__ == "__main__":  # pragma: no cover
    main()
