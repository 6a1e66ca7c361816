"""Run the chat server: ``python -m parlor``."""

import argparse
import logging

import uvicorn

from parlor.app import create_app
from parlor.config import ChatConfig, ServerConfig


def main(argv: list[str] | None = None) -> None:
    defaults = ServerConfig.from_env()
    parser = argparse.ArgumentParser(prog="parlor", description=__doc__)
    parser.add_argument("--host", default=defaults.host)
    parser.add_argument("--port", type=int, default=defaults.port)
    parser.add_argument("--log-level", default=defaults.log_level)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(ChatConfig.from_env())
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()
