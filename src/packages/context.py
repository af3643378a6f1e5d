"""Resolution context: owns the cache and one Package per namespace.

There is usually one context per program. Packages use it to turn URIs
into folders, to find module files and to evaluate them. Evaluation
itself is a pluggable hook; the default one only reads and compiles the
module source.
"""
from __future__ import annotations

import inspect
import logging
import os
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from common.aio import run_sync
from common.errors import ResolutionError
from common.http_client import HttpClient
from constants import Constants
from registry.npm.client import NpmClient
from resources.cache import ResourceCache
from resources.uri import derive_name

from .package import Module, Package
from .qname import QName, is_top_level

logger = logging.getLogger(__name__)

Compiler = Callable[[str], Any]
Evaluator = Callable[[Package, QName, Module], Optional[Awaitable[None]]]
ExternalLoader = Callable[[QName], Union[Module, Awaitable[Module]]]

NATIVE_EXTENSION = ".node"


def read_source(package: Package, qname: QName, module: Module) -> None:
    """Default evaluator: load the source text and run it through the compiler.

    A compiler returning a string replaces the source; any other value
    becomes the module's exports.
    """
    if qname.ext == NATIVE_EXTENSION:
        return
    with open(module.uri, "r", encoding="utf-8") as handle:
        code = handle.read()
    if code.startswith("#!"):
        code = code.split("\n", 1)[1] if "\n" in code else ""
    compiled = package.ctx.compile(code, module.uri)
    if isinstance(compiled, str):
        module.source = compiled
    else:
        module.exports = compiled


class Context:
    """Loads Packages, finds module files and evaluates modules."""

    def __init__(
        self,
        base: str,
        cache_root: Optional[str] = None,
        cache: Optional[ResourceCache] = None,
        extensions: Iterable[str] = Constants.DEFAULT_EXTENSIONS,
        evaluator: Optional[Evaluator] = None,
        external: Optional[ExternalLoader] = None,
        http: Optional[HttpClient] = None,
        npm: Optional[NpmClient] = None,
    ):
        """Create a context rooted at ``base``.

        Args:
            base: URI of the root package.
            cache_root: Cache folder; defaults to ``<base>/.packages`` when
                ``base`` is a folder, else a hashed temp name.
            cache: A ready ResourceCache (overrides ``cache_root``).
            extensions: Module file extensions to probe, in order.
            evaluator: Hook called with (package, qname, module) for every
                newly loaded module.
            external: Loader for top-level names nothing else resolves.
            http: HTTP client shared by fetchers and the npm client.
            npm: npm client used for ``npm:`` URIs.
        """
        self.uri = base
        if cache is None:
            if not cache_root:
                if os.path.isdir(base):
                    cache_root = os.path.join(base, Constants.CACHE_DIR_NAME)
                else:
                    cache_root = derive_name(base, prefix="depload-")
            cache = ResourceCache(cache_root, http=http, npm=npm)
        self.cache = cache
        self.evaluator: Evaluator = evaluator or read_source
        self.external = external
        self.root: Optional[Package] = None
        self._extensions: List[str] = list(extensions)
        self._compilers: Dict[str, Compiler] = {}
        self._memo: Dict[str, Package] = {}

    def __repr__(self) -> str:
        return f"<Context {self.uri}>"

    def is_ready(self) -> bool:
        return self.root is not None and self.root.is_ready()

    # ---------- Lifecycle ----------

    async def bootstrap(self) -> Package:
        """Load the root package (once)."""
        if self.root is None:
            self.root = await self.load_package(self.uri, None)
        return self.root

    async def init(self, script: Optional[str] = None) -> Module:
        """Bootstrap, then run ``script`` or the root package's main module."""
        root = await self.bootstrap()
        if script:
            logger.info('Starting script "%s".', script)
            return await root.run_script(script)
        logger.info("Starting main program.")
        return await root.load("")

    def init_sync(self, script: Optional[str] = None) -> Module:
        return run_sync(self.init(script))

    async def destroy(self) -> None:
        """Forget every package and clear the cache."""
        self._memo.clear()
        self.root = None
        await self.cache.destroy()

    def destroy_sync(self) -> None:
        run_sync(self.destroy())

    # ---------- Packages ----------

    async def resolve(self, uri: str) -> str:
        """Canonical folder for a package URI (fetched and cached if remote)."""
        return await self.cache.resolve(uri)

    def resolve_sync(self, uri: str) -> str:
        return run_sync(self.resolve(uri))

    async def load_package(self, uri: str, parent: Optional[Package] = None) -> Package:
        """Load and configure the package at ``uri``, one per namespace."""
        cached = self._memo.get(uri)
        if cached is not None:
            return cached

        package = await Package(self, uri, parent).init()
        existing = self._memo.get(package.qname.ns)
        if existing is not None:
            self._memo[uri] = existing
            return existing
        self._memo[uri] = self._memo[package.qname.ns] = package
        return package

    async def load_external(self, qname: QName) -> Module:
        """Last resort for top-level names no package could resolve.

        Raises:
            ResolutionError: when no external loader is configured.
        """
        if self.external is None:
            raise ResolutionError(f'Cannot resolve "{qname.uri()}".')
        result = self.external(qname)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def which(self, name: str, package: Optional[str] = None) -> QName:
        """Resolve ``name`` through the root (or the named) package."""
        root = await self.bootstrap()
        target = root
        if package:
            mapped = root.resolve(package)
            if is_top_level(mapped.ns):
                raise ResolutionError(f'No mapping for package "{package}".')
            target = await self.load_package(mapped.ns, root)
        return target.resolve(name)

    # ---------- Modules ----------

    def register_extension(self, ext: str, compiler: Optional[Compiler] = None) -> "Context":
        """Probe files with ``ext`` and pass their source through ``compiler``."""
        if ext not in self._extensions:
            self._extensions.append(ext)
        if compiler is not None:
            self._compilers[ext] = compiler
        return self

    def is_registered(self, ext: str) -> bool:
        return ext in self._extensions

    def compile(self, code: str, filename: str) -> Any:
        compiler = self._compilers.get(os.path.splitext(filename)[1])
        return compiler(code) if compiler else code

    def find_module(self, qname: QName) -> Optional[QName]:
        """Locate the file for ``qname``: name + ext, then name/index + ext."""
        stem, ext = os.path.splitext(qname.lname)
        if ext in self._extensions and os.path.isfile(qname.uri()):
            return QName(qname.ns, stem, ext)
        for base in (qname, qname.join("index")):
            location = base.uri()
            for candidate in self._extensions:
                if os.path.isfile(location + candidate):
                    return base.with_ext(candidate)
        return None

    async def evaluate(self, package: Package, qname: QName, module: Module) -> None:
        result = self.evaluator(package, qname, module)
        if inspect.isawaitable(result):
            await result
