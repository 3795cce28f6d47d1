"""`python -m logtrace_relay` / `logtrace-relay`: serve the relay with uvicorn."""

from __future__ import annotations

import uvicorn
from dotenv import load_dotenv

from logtrace_relay.config import load_settings


def main() -> None:
    load_dotenv()
    settings = load_settings()
    uvicorn.run("logtrace_relay.main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
