"""Console entry point for ``dropletpilot``."""
import argparse
import sys

from .pilot import DropletPilot, LogLevel

# Logging and config must be known before DropletPilot is built; the full
# parser in DropletPilot.create_cli_parser handles everything else.
_bootstrap_parser = argparse.ArgumentParser(add_help=False)
_bootstrap_parser.add_argument('--config', '-c', type=str, default=None)
_bootstrap_parser.add_argument('--log-level', '-l', choices=[level.value for level in LogLevel], default='INFO')


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    options, _ = _bootstrap_parser.parse_known_args(argv)

    pilot = DropletPilot(config_file=options.config, log_level=LogLevel(options.log_level))
    pilot.run_cli(argv)


if __name__ == "__main__":
    main()
