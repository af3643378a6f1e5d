"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    RESOLUTION_ERROR = 1
    CONNECTION_ERROR = 2


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    PACKAGE_JSON_FILE = "package.json"
    STATE_FILE = ".depload"
    STATE_FILE_PREFIX = ".depload-"
    CACHE_DIR_NAME = ".packages"
    SCRATCH_DIR_NAME = "tmp"
    INSTALL_SCRATCH_DIR_NAME = ".depload-tmp"
    CONFIG_FILE = "depload.yml"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    MAX_REDIRECTS = 10
    DEFAULT_EXTENSIONS = (".js", ".node")
    DEFAULT_LIB_DIR = "./lib"
    USER_AGENT = "depload/0.3"

    ENV_LOG_LEVEL = "DEPLOAD_LOG_LEVEL"
    ENV_CONFIG = "DEPLOAD_CONFIG"
    ENV_CACHE = "DEPLOAD_CACHE"
    ENV_REGISTRY = "DEPLOAD_REGISTRY"
