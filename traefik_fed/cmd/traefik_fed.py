import argparse
import logging
import os
import sys

from dotenv import load_dotenv

from traefik_fed.config import CONFIG_FILE_NAME, CONFIG_PATH_ENV, AppConfig, configure_logging
from traefik_fed.federation import FederationService
from traefik_fed.internal.domain.errors import ConfigInvalid
from traefik_fed.internal.version import version

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='traefik-fed',
        description='Federate HTTP routers from several Traefik instances into one dynamic configuration.',
    )
    parser.add_argument('--config', default=os.getenv(CONFIG_PATH_ENV, CONFIG_FILE_NAME),
                        help='Path to configuration file (default: %(default)s)')
    parser.add_argument('--version', action='store_true', help='Print version information and exit')
    return parser


def main(argv=None) -> int:
    # Load environment variables from .env file
    load_dotenv()
    args = build_parser().parse_args(argv)

    version_info = version.get()
    if args.version:
        print(version_info)
        return 0

    try:
        app_config = AppConfig(args.config)
        app_config.validate()
    except ConfigInvalid as e:
        configure_logging()
        logger.error(f"Invalid configuration: {e}")
        return 1

    app_config.configure_logging()
    logger.info(str(version_info))
    logger.info(
        f"Loaded configuration from {app_config.config_path}: upstreams={len(app_config.upstreams)}, "
        f"poll_interval={app_config.poll_interval}s, http_enabled={app_config.http_output.enabled}, "
        f"file_enabled={app_config.file_output.enabled}"
    )

    service = FederationService(app_config, version_info)
    return service.run()


if __name__ == '__main__':
    sys.exit(main())
