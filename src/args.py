"""Argument parsing functionality for depload."""

import argparse


def build_parser():
    """Build the argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog="depload",
        description="depload - fetch, cache and resolve packages and module names",
        add_help=True,
    )

    parser.add_argument("--cache",
                        dest="CACHE",
                        help="Cache folder (default: <package>/.packages)",
                        action="store",
                        type=str)
    parser.add_argument("--registry",
                        dest="REGISTRY",
                        help="npm registry base URL",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to YAML configuration file",
                        action="store",
                        type=str)
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

    commands = parser.add_subparsers(dest="COMMAND", metavar="COMMAND")
    commands.required = True

    install = commands.add_parser("install", help="Install a URI into a destination folder")
    install.add_argument("URI", help="Local path, archive, http(s), git or npm URI")
    install.add_argument("DEST", help="Destination folder (left alone if it exists)")

    get = commands.add_parser("get", help="Install a URI into a derived temporary folder")
    get.add_argument("URI", help="Local path, archive, http(s), git or npm URI")
    get.add_argument("-b", "--base",
                     dest="BASE",
                     help="Folder to install under (default: system temp)",
                     action="store",
                     type=str)

    resolve = commands.add_parser("resolve", help="Resolve a URI through the cache")
    resolve.add_argument("URI", help="Local path, archive, http(s), git or npm URI")

    lookup = commands.add_parser("lookup", help="Look a package up in the npm registry")
    lookup.add_argument("NAME", help="Package name, optionally name@constraint")

    which = commands.add_parser(
        "which",
        help="Resolve a module name through a package",
        description=(
            "Print the {namespace}local-name a module name resolves to. For a "
            "mapped package or dependency the local part is relative to that "
            "package's lib folder, so foo/x is loaded from <foo>/lib/x."
        ),
    )
    which.add_argument("NAME", help="Module name, e.g. foo/bar or ./x (local part relative to the lib folder)")
    which.add_argument("-p", "--package",
                       dest="PACKAGE",
                       help="Resolve through this dependency instead of the root package",
                       action="store",
                       type=str)
    which.add_argument("-r", "--root",
                       dest="ROOT",
                       help="Root package folder (default: current directory)",
                       action="store",
                       type=str,
                       default=".")

    load = commands.add_parser("load", help="Load a package and its main module (or a script)")
    load.add_argument("-r", "--root",
                      dest="ROOT",
                      help="Root package folder or URI (default: current directory)",
                      action="store",
                      type=str,
                      default=".")
    load.add_argument("-s", "--script",
                      dest="SCRIPT",
                      help="Script to run instead of the main module, relative to the current directory",
                      action="store",
                      type=str)

    commands.add_parser("clear-cache", help="Delete the cache folder")

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
