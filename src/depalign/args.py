"""Argument parsing functionality for depalign."""

import argparse


def _add_logging_args(parser):
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="depalign",
        description="depalign - dependency graph resolution with conflict detection",
        add_help=True,
    )
    subparsers = parser.add_subparsers(dest="action", required=True)

    resolve = subparsers.add_parser("resolve", help="Resolve the configurations of a request document")
    resolve.add_argument("-i", "--input",
                         dest="INPUT",
                         help="Request document (YAML or JSON)",
                         action="store", type=str,
                         required=True)
    resolve.add_argument("-c", "--configuration",
                         dest="CONFIGURATIONS",
                         help="Configuration to resolve (repeatable; default: all registered)",
                         action="append", type=str,
                         default=[])
    resolve.add_argument("--config",
                         dest="CONFIG",
                         help="Path to a depalign YAML config file",
                         action="store", type=str)
    resolve.add_argument("--fail-on-version-conflict",
                         dest="FAIL_ON_VERSION_CONFLICT",
                         help="Fail instead of upgrading when several versions of a module are requested",
                         action="store_true",
                         default=None)
    resolve.add_argument("--fail-on-non-reproducible",
                         dest="FAIL_ON_NON_REPRODUCIBLE",
                         help="Fail when a selected version comes from a dynamic or changing declaration",
                         action="store_true",
                         default=None)
    resolve.add_argument("--max-workers",
                         dest="MAX_WORKERS",
                         help="Concurrent metadata lookups per configuration",
                         action="store", type=int)
    resolve.add_argument("--lookup-timeout",
                         dest="LOOKUP_TIMEOUT",
                         help="Seconds to wait for a single metadata lookup",
                         action="store", type=float)
    resolve.add_argument("-o", "--output",
                         dest="OUTPUT",
                         help="Path to output JSON file (default: stdout)",
                         action="store", type=str)
    resolve.add_argument("--error-on-warnings",
                         dest="ERROR_ON_WARNINGS",
                         help="Exit with a non-zero status code if conflicts were auto-resolved.",
                         action="store_true")
    resolve.add_argument("-q", "--quiet",
                         dest="QUIET",
                         help="Do not output to console.",
                         action="store_true")
    _add_logging_args(resolve)

    return parser.parse_args(argv)
