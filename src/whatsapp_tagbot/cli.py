"""Command-line interface for the WhatsApp tag bot."""

import argparse
import logging
import signal
import sys
from dataclasses import replace

from .config import Config, load_config
from .stores import JsonSettingsStore
from .gateway import WhatsAppBridgeGateway
from .dispatcher import CommandDispatcher


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="WhatsApp Tag Bot - Mention every member of a group",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                # Use default config
  %(prog)s -c bot.yaml                    # Use specific config file
  %(prog)s -s ~/tagbot/config.json        # Specify settings file
  %(prog)s --bridge ws://10.0.0.5:3001    # Use a remote bridge
""",
    )

    parser.add_argument(
        "-c", "--config",
        metavar="FILE",
        help="Path to YAML configuration file",
    )

    parser.add_argument(
        "-s", "--settings",
        metavar="FILE",
        help="JSON file holding owner and admin identities",
    )

    parser.add_argument(
        "--bridge",
        metavar="URL",
        help="Websocket URL of the WhatsApp bridge",
    )

    parser.add_argument(
        "--token",
        metavar="TOKEN",
        help="Shared secret for the WhatsApp bridge",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args()


def main() -> int:
    """Main entry point."""
    args = parse_args()
    setup_logging(args.verbose)

    logger = logging.getLogger(__name__)

    # Load configuration
    if args.config:
        try:
            config = load_config(args.config)
        except FileNotFoundError:
            logger.error(f"Config file not found: {args.config}")
            return 1
    else:
        config = Config()

    # Override config with command line arguments
    if args.settings:
        config = replace(config, settings_path=args.settings)
    if args.bridge:
        config = replace(config, bridge_url=args.bridge)
    if args.token:
        config = replace(config, bridge_token=args.token)

    # Create components
    try:
        store = JsonSettingsStore(config.get_settings_path())
        gateway = WhatsAppBridgeGateway(
            url=config.bridge_url,
            token=config.bridge_token,
            request_timeout=config.request_timeout_seconds,
        )
        dispatcher = CommandDispatcher(gateway, store, config)
    except Exception as e:
        logger.error(f"Failed to initialize bot: {e}")
        return 1

    # Set up signal handlers for graceful shutdown
    def signal_handler(sig, frame):
        logger.info("Shutdown signal received")
        dispatcher.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    # Start bot
    logger.info("Starting WhatsApp tag bot...")
    logger.info(f"  Settings file: {config.get_settings_path()}")
    logger.info(f"  Bridge: {config.bridge_url}")
    logger.info(f"  Session timeout: {config.session_timeout_minutes} min")

    try:
        dispatcher.start()
        logger.info("Bot running. Press Ctrl+C to stop.")

        # Keep running
        signal.pause()

    except Exception as e:
        logger.error(f"Bot error: {e}")
        return 1
    finally:
        dispatcher.stop()

    return 0


if __name__ == "__main__":
    sys.exit(main())
