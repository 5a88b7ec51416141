"""Run the collector server: python -m clustermon.server [config.json]"""

import sys

from aiohttp import web

from clustermon.server.main import build_server, logger
from clustermon.shared.config import ServerConfig, load_config, split_listen_address
from clustermon.shared.errors import ConfigError, StartupError
from clustermon.shared.logger import configure_logging


def main():
    config_path = sys.argv[1] if len(sys.argv) > 1 else None

    try:
        config = ServerConfig.from_dict(load_config(config_path))
        configure_logging(config.log_level)
    except (ConfigError, FileNotFoundError) as e:
        logger.error(f"Failed to load server configuration: {e}")
        sys.exit(1)

    host, port = split_listen_address(config.listen_address)

    try:
        web.run_app(build_server(config), host=host, port=port, print=None)
    except StartupError as e:
        logger.error(f"Failed to start server: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nCollector shutting down...")


if __name__ == "__main__":
    main()
