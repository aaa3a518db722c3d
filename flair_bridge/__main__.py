#
# Copyright 2025 The FlairBridge contributors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
"""Command-line interface for Flair Bridge."""

import asyncio
import argparse
import logging
import logging.handlers
import os
import signal
import sys
from pathlib import Path
from typing import Optional

import uvicorn

from .config import load_config
from .exceptions import ConfigError
from .platform import FlairPlatform
from .routes import create_app, register_routes
from .store import AccessoryStore

# Logger will be configured in main() based on daemon/console mode
logger = logging.getLogger(__name__)

# Global variables
platform: Optional[FlairPlatform] = None
server: Optional[uvicorn.Server] = None


def uvicorn_log_config(args) -> dict:
    """uvicorn logging that matches our own format and avoids duplicates."""
    if args.syslog:
        # Syslog mode: disable uvicorn's default logging, use root logger
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "loggers": {
                "uvicorn": {"handlers": [], "level": "INFO", "propagate": True},
                "uvicorn.error": {"handlers": [], "level": "INFO", "propagate": True},
                "uvicorn.access": {"handlers": [], "level": "WARNING", "propagate": True},
            },
        }

    if args.daemon:
        # Daemon mode: simple format without timestamps
        formatter = {"format": "%(levelname)-8s %(message)s"}
    else:
        # Console mode: timestamp + message
        formatter = {"format": "%(asctime)s %(levelname)s %(message)s", "datefmt": "%Y-%m-%d %H:%M:%S"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": dict(formatter),
            "access": dict(formatter),
        },
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
            "access": {
                "formatter": "access",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
        },
    }


def log_startup_failure(task: asyncio.Task):
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Platform startup failed: {task.exception()}")


async def run_server(args):
    """Run the Flair Bridge server."""
    global platform, server

    def handle_signal(signum, frame):
        """Handle shutdown signals gracefully."""
        logger.info(f"Received signal {signum}, shutting down...")
        if server:
            server.should_exit = True

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    startup: Optional[asyncio.Task] = None
    try:
        config = load_config(args.config)

        # The store runs schema migrations before anything else touches the DB.
        db_path = Path(os.path.expanduser(args.state))
        try:
            store = AccessoryStore(str(db_path))
        except Exception as e:
            logger.error(f"Database migration check failed: {e}")
            raise

        platform = FlairPlatform(config, store)

        app = create_app()
        register_routes(app, lambda: platform)

        # Restore and discovery run next to the API server
        startup = asyncio.create_task(platform.start())
        startup.add_done_callback(log_startup_failure)

        logger.info(f"*** Flair Bridge ready! ***")
        logger.info(f"API Server: http://0.0.0.0:{args.port}")
        logger.info(f"Documentation: http://0.0.0.0:{args.port}/docs")
        logger.info(f"Status: http://0.0.0.0:{args.port}/status")
        logger.info(f"Accessories: http://0.0.0.0:{args.port}/accessories")

        server_config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=args.port,
            log_config=uvicorn_log_config(args),
            access_log=True
        )
        server = uvicorn.Server(server_config)
        await server.serve()

    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down gracefully...")
    except Exception as e:
        logger.error(f"ERROR: Failed to start Flair Bridge: {e}")
        raise
    finally:
        if startup and not startup.done():
            startup.cancel()
        if platform:
            logger.info("Performing cleanup...")
            await platform.stop()

        if args.pid_file:
            pid_path = Path(args.pid_file)
            try:
                if pid_path.exists():
                    pid_path.unlink()
                    logger.info(f"PID file removed: {pid_path}")
            except OSError as e:
                logger.warning(f"Failed to remove PID file: {e}")


def configure_logging(args):
    """Configure root logging for console, daemon or syslog mode."""
    if args.syslog:
        syslog_address = args.syslog
        if ':' in syslog_address and not syslog_address.startswith('/'):
            # Network address (host:port)
            host, port = syslog_address.rsplit(':', 1)
            syslog_address = (host, int(port))
        # else: Unix socket path (e.g., /dev/log)

        try:
            syslog_handler = logging.handlers.SysLogHandler(
                address=syslog_address,
                facility=logging.handlers.SysLogHandler.LOG_DAEMON
            )
            syslog_handler.setFormatter(logging.Formatter(
                'flair-bridge[%(process)d]: %(levelname)s %(message)s'
            ))

            root_logger = logging.getLogger()
            root_logger.setLevel(logging.INFO)
            # Silence console output in syslog mode
            root_logger.handlers = [syslog_handler]

            logger.info("Logging to syslog: %s", args.syslog)
        except OSError as e:
            # Fall back to console if syslog fails
            logging.basicConfig(
                level=logging.INFO,
                format='%(asctime)s %(levelname)s %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S',
                stream=sys.stdout,
                force=True
            )
            logger.error(f"Failed to connect to syslog ({args.syslog}): {e}")
            logger.info("Falling back to console logging")
    elif args.daemon:
        # Daemon mode: no timestamp, syslog adds it
        logging.basicConfig(
            level=logging.INFO,
            format='%(levelname)s %(message)s',
            stream=sys.stdout,
            force=True
        )
    else:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s %(levelname)s %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
            stream=sys.stdout,
            force=True
        )

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.info("Verbose logging enabled")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Flair Bridge - Flair vents, pucks and rooms as HomeKit-style accessories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with a configuration file (console mode)
  flair-bridge --config ~/.flair-bridge.json

  # Credentials from the environment
  FLAIR_CLIENT_ID=... FLAIR_CLIENT_SECRET=... FLAIR_USERNAME=... FLAIR_PASSWORD=... flair-bridge

  # Run as system daemon
  flair-bridge --daemon --pid-file /var/run/flair-bridge.pid

  # Send logs to local syslog
  flair-bridge --syslog /dev/log

  # Debug mode with verbose logging
  flair-bridge --verbose

API Endpoints:
  GET  /status                                   - Bridge status
  GET  /accessories                              - All accessories
  GET  /accessories/{uuid}                       - One accessory
  PUT  /accessories/{uuid}/characteristics/{name} - Send a command
  POST /refresh                                  - Run discovery now
  POST /structure/mode                           - Set the structure mode
        """
    )
    parser.add_argument("--config", default="~/.flair-bridge.json",
                        help="Path to configuration file (default: ~/.flair-bridge.json)")
    parser.add_argument("--state", default="~/.flair-bridge.db",
                        help="Path to accessory database (default: ~/.flair-bridge.db)")
    parser.add_argument("--port", type=int, default=4408,
                        help="Port for REST API server (default: 4408)")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable verbose logging (DEBUG level)")
    parser.add_argument("--daemon", action="store_true",
                        help="Run in daemon mode (structured logging for syslog, auto-enables --pid-file)")
    parser.add_argument("--syslog",
                        help="Send logs to syslog instead of stdout (e.g., /dev/log, localhost:514)")
    parser.add_argument("--pid-file",
                        help="Write process ID to specified file (useful for daemon mode)")
    return parser


def main():
    """Main entry point for the CLI."""
    args = build_parser().parse_args()

    # Daemon mode implies PID file if not specified
    if args.daemon and not args.pid_file:
        args.pid_file = "/var/run/flair-bridge.pid" if sys.platform != "win32" else "flair-bridge.pid"

    configure_logging(args)

    if args.pid_file:
        pid_path = Path(args.pid_file)
        try:
            pid_path.write_text(str(os.getpid()))
            logger.info(f"PID file written: {pid_path}")
        except OSError as e:
            logger.error(f"Failed to write PID file: {e}")
            sys.exit(1)

    try:
        asyncio.run(run_server(args))
    except KeyboardInterrupt:
        logger.info("*** Shutdown complete ***")
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(2)
    except Exception as e:
        logger.error(f"ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
