"""
Port forwarding client entry point.

    forward_client --targethost=<hostname> --targetport=<portnumber>
                   [--handshakehost=<hostname>] [--handshakeport=<portnumber>]
                   --usercert=<filename> --cacert=<filename> --key=<filename>
"""

import logging
import sys

from config.arguments  import ForwardConfig, build_parser
from config.settings   import Settings
from core.errors       import ConfigurationError, ForwardError
from forwarding.client import ForwardClient
from utils.log_setup   import setup_logging

logger = logging.getLogger("SecureForward.Main")


def main(argv=None) -> int:
    parser = build_parser(Settings.CLIENT_PROGRAM, client=True)
    args   = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = ForwardConfig.from_options(vars(args))
        logger.info("%s v%s client starting",
                    Settings.APP_NAME, Settings.APP_VERSION)
        ForwardClient(config).start()
    except ConfigurationError as exc:
        print(f"{Settings.CLIENT_PROGRAM}: {exc}", file=sys.stderr)
        parser.print_help(sys.stderr)
        return 2
    except ForwardError as exc:
        logger.error("%s", exc)
        print(f"{Settings.CLIENT_PROGRAM}: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        logger.error("I/O error: %s", exc)
        print(f"{Settings.CLIENT_PROGRAM}: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
