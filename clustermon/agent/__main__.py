"""Run the heartbeat agent: python -m clustermon.agent [config.json]"""

import asyncio
import sys

from clustermon.agent.emitter import HeartbeatEmitter, logger, resolve_identifier
from clustermon.shared.config import AgentConfig, load_config
from clustermon.shared.errors import ConfigError, StartupError
from clustermon.shared.logger import configure_logging


async def run_agent(config: AgentConfig):
    emitter = HeartbeatEmitter(
        server_address=config.server_address,
        shared_secret=config.shared_secret,
        identifier=resolve_identifier(config.host_identifier),
        ping_frequency=config.ping_frequency,
        request_timeout=config.request_timeout,
    )
    try:
        await emitter.run()
    finally:
        emitter.stop()
        await emitter.aclose()


def main():
    config_path = sys.argv[1] if len(sys.argv) > 1 else None

    try:
        config = AgentConfig.from_dict(load_config(config_path))
        configure_logging(config.log_level)
    except (ConfigError, FileNotFoundError) as e:
        logger.error(f"Failed to load agent configuration: {e}")
        sys.exit(1)

    try:
        asyncio.run(run_agent(config))
    except StartupError as e:
        logger.error(f"Failed to start agent: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nAgent shutting down...")


if __name__ == "__main__":
    main()
