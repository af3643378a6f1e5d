"""depload - fetch, cache and resolve packages and module names.

Returns:
    int: Exit code (see ``constants.ExitCodes``)
"""
import logging
import os
import sys

from args import parse_args
from cli_config import load_config
from common.aio import run_sync
from common.errors import DeploadError, TransportError
from common.http_client import HttpClient
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import Constants, ExitCodes
from install.orchestrator import Installer
from packages.context import Context
from registry.npm.client import NpmClient
from resources.cache import ResourceCache
from resources.uri import complete_name

logger = logging.getLogger(__name__)


def setup_logging(args):
    """Configure logging from --loglevel and --logfile."""
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()
    configure_logging()
    level_name = str(getattr(args, "LOG_LEVEL", None) or "INFO").upper()
    logging.getLogger().setLevel(getattr(logging, level_name, logging.INFO))

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def split_spec(text):
    """Split ``name@constraint`` (scoped names keep their leading @)."""
    at = text.rfind("@")
    if at <= 0:
        return text, None
    return text[:at], text[at + 1:]


def cache_root(config):
    return config.cache_root or os.path.join(os.getcwd(), Constants.CACHE_DIR_NAME)


def _install(args, http, npm):
    installer = Installer.default(http=http, npm=npm)
    uri = complete_name(args.URI)
    if args.COMMAND == "install":
        return installer.install_sync(uri, args.DEST)
    return installer.get_sync(uri, args.BASE)


def _context(args, config, http, npm):
    return Context(
        complete_name(args.ROOT),
        cache_root=config.cache_root,
        extensions=config.extensions,
        http=http,
        npm=npm,
    )


def _lookup(args, npm):
    name, constraint = split_spec(args.NAME)
    if constraint is None:
        record = run_sync(npm.lookup_exact(name))
    else:
        record = run_sync(npm.lookup_constrained([(name, constraint)]))
    return f"{record.get('name', name)}@{record.get('version', '?')} {npm.tarball_url(record, args.NAME)}"


def run(args):
    """Execute the parsed command and return an exit code."""
    config = load_config(args)
    http = HttpClient(timeout=config.request_timeout, max_redirects=config.max_redirects)
    npm = NpmClient(config.registry_url, http)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND),
        )

    try:
        if args.COMMAND in ("install", "get"):
            output = _install(args, http, npm)
        elif args.COMMAND == "resolve":
            output = ResourceCache(cache_root(config), http=http, npm=npm).resolve_sync(complete_name(args.URI))
        elif args.COMMAND == "lookup":
            output = _lookup(args, npm)
        elif args.COMMAND == "which":
            output = str(run_sync(_context(args, config, http, npm).which(args.NAME, args.PACKAGE)))
        elif args.COMMAND == "load":
            script = os.path.abspath(args.SCRIPT) if args.SCRIPT else None
            output = _context(args, config, http, npm).init_sync(script).uri
        elif args.COMMAND == "clear-cache":
            ResourceCache(cache_root(config), http=http, npm=npm).destroy_sync()
            output = None
        else:
            logger.error("Unknown command: %s", args.COMMAND)
            return ExitCodes.RESOLUTION_ERROR.value
    except TransportError as exc:
        logger.error("%s", exc, extra=extra_context(event="cli_error", component="cli", outcome="transport"))
        return ExitCodes.CONNECTION_ERROR.value
    except DeploadError as exc:
        logger.error("%s", exc, extra=extra_context(event="cli_error", component="cli", outcome="failure"))
        return ExitCodes.RESOLUTION_ERROR.value

    if output is not None:
        print(output)
    return ExitCodes.SUCCESS.value


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    setup_logging(args)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
