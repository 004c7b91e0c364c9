# client/main_tui.py
# Entry points for the Textual TUI clients.
# Server URL comes from QUIZSYNC_SERVER or the first CLI argument.

import argparse
import sys

from quizsync.config import Settings
from quizsync.log import configure_logging
from quizsync.client.utils import normalize_server_arg


def _settings(argv, role: str, environ=None) -> Settings:
    parser = argparse.ArgumentParser(prog=f"quizsync-{role}")
    parser.add_argument("server", nargs="?", help="store server, e.g. ws://192.168.1.20:8000 or 192.168.1.20:8000")
    args = parser.parse_args(argv)

    settings = Settings.from_env(environ)
    ok, url = normalize_server_arg(args.server or settings.server_url)
    if not ok:
        parser.error(url)
    settings.server_url = url
    configure_logging(role, settings.log_dir)
    return settings


def host_main(argv=None):
    from quizsync.client.host_tui import run
    run(_settings(sys.argv[1:] if argv is None else argv, "host"))


def player_main(argv=None):
    from quizsync.client.student_tui import run
    run(_settings(sys.argv[1:] if argv is None else argv, "player"))


def main():
    # main_tui.py host|player [server]
    if len(sys.argv) >= 2 and sys.argv[1] == "host":
        host_main(sys.argv[2:])
    else:
        player_main(sys.argv[2:] if len(sys.argv) >= 2 and sys.argv[1] == "player" else None)


if __name__ == "__main__":
    main()
