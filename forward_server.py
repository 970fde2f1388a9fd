"""
Port forwarding server entry point (serves one client session).

    forward_server [--handshakehost=<hostname>] [--handshakeport=<portnumber>]
                   [--relayhost=<hostname>]
                   --usercert=<filename> --cacert=<filename> --key=<filename>
"""

import logging
import sys

from config.arguments  import ServerConfig, build_parser
from config.settings   import Settings
from core.errors       import ConfigurationError, ForwardError
from forwarding.server import ForwardServer
from utils.log_setup   import setup_logging

logger = logging.getLogger("SecureForward.Main")


def main(argv=None) -> int:
    parser = build_parser(Settings.SERVER_PROGRAM, client=False)
    args   = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = ServerConfig.from_options(vars(args))
        logger.info("%s v%s server starting",
                    Settings.APP_NAME, Settings.APP_VERSION)
        ForwardServer(config).serve_once()
    except ConfigurationError as exc:
        print(f"{Settings.SERVER_PROGRAM}: {exc}", file=sys.stderr)
        parser.print_help(sys.stderr)
        return 2
    except (ForwardError, OSError) as exc:
        logger.error("%s", exc)
        print(f"{Settings.SERVER_PROGRAM}: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
