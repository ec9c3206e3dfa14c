#!/usr/bin/env python3
import argparse
import asyncio
import errno
import logging
import logging.config
import sys
from typing import Optional

from pydantic import ValidationError

from traplistener.config import Configuration, InvalidConfigurationError, read_configuration
from traplistener.listener import AddressResolutionError, BindError, ReadError, TrapListener

DEFAULT_CONFIG_FILE = "traplistener.toml"
_log = logging.getLogger("traplistener")


def main(arguments=None):
    args = parse_args(arguments)
    try:
        config = read_configuration(args.config_file or DEFAULT_CONFIG_FILE, args.address)
    except OSError:
        if args.config_file:
            _log.fatal(f"No config file with the name {args.config_file} found.")
            sys.exit(1)
        config = read_configuration(address=args.address)
    except InvalidConfigurationError:
        _log.fatal(f"Configuration file with the name {args.config_file or DEFAULT_CONFIG_FILE} is invalid TOML.")
        sys.exit(1)
    except ValidationError as e:
        _log.fatal(e)
        sys.exit(1)

    logging.config.dictConfig(config.logging)
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        asyncio.run(run_listener(config, stop_in=args.stop_in))
    except KeyboardInterrupt:
        pass
    except BindError as error:
        if isinstance(error.__cause__, PermissionError):
            _log.fatal(
                "Permission denied on UDP address %s. Specify an unprivileged port, or run as root", config.address
            )
            sys.exit(errno.EACCES)
        _log.fatal("%s", error)
        sys.exit(1)
    except (AddressResolutionError, ReadError) as error:
        _log.fatal("%s", error)
        sys.exit(1)


async def run_listener(config: Configuration, stop_in: Optional[int] = None):
    """Runs a trap listener that logs every trap it receives, optionally stopping it after `stop_in` seconds"""
    listener = TrapListener(config=config)
    if stop_in:
        _log.info("Instructed to stop in %s seconds", stop_in)
        asyncio.get_running_loop().call_later(stop_in, listener.close)
    await listener.listen()


def parse_args(arguments=None):
    parser = argparse.ArgumentParser(description="Receive SNMP traps and log them")
    parser.add_argument(
        "address",
        nargs="?",
        default=None,
        help="UDP address to listen for traps on, as host:port.  Overrides the address in the config file.  "
        "Ports below 1024 require root privileges.",
    )
    parser.add_argument(
        "--config-file",
        type=str,
        required=False,
        help="Path to traplistener configuration file",
    )
    parser.add_argument(
        "--debug", action="store_true", default=False, help="Set global log level to DEBUG. Very chatty!"
    )
    parser.add_argument("--stop-in", type=int, default=None, help="Stop listening after N seconds.", metavar="N")
    args = parser.parse_args(args=arguments)
    return args


if __name__ == "__main__":
    main()
