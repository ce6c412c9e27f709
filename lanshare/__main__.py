from dataclasses import replace
import argparse

import uvicorn

from lanshare.config import get_settings
from lanshare.logging_config import setup_logging
from lanshare.main import create_app


def main(argv: list[str] | None = None) -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Share files with devices on the local network.")
    parser.add_argument("--host", default=settings.host, help="interface to bind (default: %(default)s)")
    parser.add_argument("--port", type=int, default=settings.port, help="port to listen on (default: %(default)s)")
    parser.add_argument("--log-level", default=None, help="overrides LOG_LEVEL")
    args = parser.parse_args(argv)

    # The startup banner, QR code and log fields advertise the port actually bound.
    settings = replace(settings, host=args.host, port=args.port)
    setup_logging(settings, args.log_level)
    app = create_app(settings)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
