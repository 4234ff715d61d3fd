"""Main entry point for the linkbridge collector."""
from __future__ import annotations

import logging
import sys

from collector import __version__
from collector.config import Config
from collector.pairing import pair, sync, unpair


def print_help():
    """Print help message."""
    print(f"""
linkbridge collector v{__version__}

Usage:
  linkbridge [options] <command>

Commands:
  pair <code|url>       Claim a pairing code from the admin app
  sync <cookies.json>   Harvest the session in a cookie export and sync it
  unpair                Revoke the ephemeral token and clear config

Options:
  --api-url URL     Override API endpoint (default: https://api.linkbridge.app)
  --verbose         Log harvester progress to stderr
  -h, --help        Show this help
  -v, --version     Show version

Environment:
  LINKBRIDGE_API_URL    Override API endpoint (same as --api-url)

Examples:
  linkbridge pair 3f9c...e1                     # Pair using the code shown in the admin app
  linkbridge sync ~/cookies.json                # Sync the session in a cookie export
  linkbridge --api-url http://localhost:8000 pair <code>
""")


def parse_args(args: list[str]) -> dict:
    """
    Parse command line arguments.

    Returns dict with:
        command: str | None (pair, sync, unpair)
        argument: str | None (pairing code or cookie file)
        api_url: str | None
        verbose: bool
        show_help: bool
        show_version: bool
    """
    result = {
        "command": None,
        "argument": None,
        "api_url": None,
        "verbose": False,
        "show_help": False,
        "show_version": False,
    }

    i = 0
    while i < len(args):
        arg = args[i]

        if arg in ("pair", "sync", "unpair") and result["command"] is None:
            result["command"] = arg
        elif arg == "--api-url":
            if i + 1 < len(args):
                result["api_url"] = args[i + 1]
                i += 1
            else:
                print("Error: --api-url requires a URL")
                sys.exit(1)
        elif arg == "--verbose":
            result["verbose"] = True
        elif arg in ("--help", "-h"):
            result["show_help"] = True
        elif arg in ("--version", "-v"):
            result["show_version"] = True
        elif arg.startswith("-"):
            print(f"Unknown option: {arg}")
            print("Run 'linkbridge --help' for usage.")
            sys.exit(1)
        elif result["command"] in ("pair", "sync") and result["argument"] is None:
            result["argument"] = arg
        else:
            print(f"Unknown command: {arg}")
            print("Run 'linkbridge --help' for usage.")
            sys.exit(1)

        i += 1

    return result


def main():
    """Main entry point."""
    args = parse_args(sys.argv[1:])

    if args["show_version"]:
        print(f"linkbridge-collector {__version__}")
        return

    if args["show_help"] or args["command"] is None:
        print_help()
        return

    if args["verbose"]:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")

    config = Config(api_url_override=args["api_url"])

    if args["command"] in ("pair", "sync") and not args["argument"]:
        what = "a pairing code" if args["command"] == "pair" else "a cookie export file"
        print(f"Error: {args['command']} requires {what}")
        sys.exit(1)

    if args["command"] == "pair":
        success = pair(config, args["argument"])
    elif args["command"] == "sync":
        success = sync(config, args["argument"])
    else:
        success = unpair(config)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
