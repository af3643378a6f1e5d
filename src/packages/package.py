"""Packages and modules.

A Package is a folder of modules configured by ``package.json``. It
resolves module names through its namespace map, which remaps top-level
names (dependencies, explicit ``mappings``, its own name) to the QName of
another package.
"""
from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Dict, Optional
from urllib.parse import urlencode

from common.aio import run_sync
from common.errors import ParseError, ResolutionError
from constants import Constants

from .descriptor import load_descriptor
from .qname import (
    QName,
    folder_name,
    is_absolute,
    is_relative,
    is_top_level,
    relative_name,
    simple_join,
    without_ext,
)

if TYPE_CHECKING:
    from .context import Context

logger = logging.getLogger(__name__)


class Module:
    """A loaded (or loading) module: id, source location and exports."""

    def __init__(self, module_id: str, uri: Optional[str] = None, package: Optional["Package"] = None):
        self.id = module_id
        self.uri = uri
        self.package = package
        self.exports: Any = {}
        self.source: Optional[str] = None

    def __repr__(self) -> str:
        return f"<Module {self.id}>"


class Package:
    """A collection of modules rooted at a resolved URI."""

    def __init__(self, ctx: "Context", uri: str, parent: Optional["Package"] = None):
        self.ctx = ctx
        self.uri = uri
        self.parent = parent
        self.qname: Optional[QName] = None
        self.name: Optional[str] = None
        self.version: Optional[str] = None
        self.dependencies: Dict[str, str] = {}
        self.lib: Optional[QName] = None
        self.main: Optional[str] = None
        self.nsmap: Dict[str, QName] = {}
        self.modules: Dict[str, Module] = {}
        self.defined: Dict[str, Module] = {}

    def __repr__(self) -> str:
        return f"<Package {self.uri}>"

    def is_ready(self) -> bool:
        return self.qname is not None

    def configure(self, qname: QName, conf: Dict[str, Any]) -> "Package":
        """Configure from a decoded descriptor.

        Args:
            qname: QName of the resolved package folder.
            conf: Descriptor contents.

        Raises:
            ParseError: if ``name`` is missing.
            ResolutionError: if the namespace map has a cycle.
        """
        if not conf.get("name"):
            raise ParseError(f'Missing required "name" in package {qname.ns}.')

        directories = {"lib": Constants.DEFAULT_LIB_DIR, **(conf.get("directories") or {})}
        self.qname = qname
        self.name = conf["name"]
        self.version = conf.get("version")
        self.dependencies = dict(conf.get("dependencies") or {})
        self.lib = qname.resolve(folder_name(directories["lib"]))
        self.main = without_ext(conf.get("main")) or simple_join(directories["lib"], "index")
        self.nsmap = self._make_nsmap(conf.get("mappings") or {})
        self.modules = {}
        self.defined = {}
        return self

    def _make_nsmap(self, mappings: Dict[str, str]) -> Dict[str, QName]:
        nsmap: Dict[str, QName] = {}
        for name, target in mappings.items():
            if is_relative(target):
                target = os.path.normpath(os.path.join(self.qname.ns, target))
            qname = QName.make(target)
            if qname is None:
                raise ParseError(f'Invalid mapping "{name}": "{target}".')
            nsmap[name] = qname

        # Unmapped dependencies are looked up in npm at their declared constraint.
        for name, constraint in self.dependencies.items():
            if name not in nsmap:
                nsmap[name] = QName("npm:/?" + urlencode({name: constraint or ""}))

        nsmap[self.name] = self.qname

        closed: Dict[str, QName] = {}
        for name, qname in nsmap.items():
            seen = {name}
            while qname.ns in nsmap:
                if qname.ns in seen:
                    raise ResolutionError(f'Cyclic mapping for "{name}" in {self}.')
                seen.add(qname.ns)
                qname = nsmap[qname.ns].resolve(qname.lname)
            closed[name] = qname
        return closed

    # ---------- Resolution ----------

    def resolve(self, name: str, relative_to: Optional[QName] = None) -> QName:
        """Resolve ``name`` to a QName without loading anything.

        Top-level names that are neither defined nor mapped come back
        unresolved for the caller to escalate.
        """
        if not name:
            return (relative_to or self.qname).resolve(self.main)
        if is_relative(name):
            return (relative_to or self.lib).resolve(name)
        if is_absolute(name):
            return QName.make(name)

        qname = QName.make(name)
        if name in self.defined:
            return qname
        if qname.ns in self.nsmap:
            return self.nsmap[qname.ns].resolve(qname.lname)
        return qname

    async def init(self) -> "Package":
        """Resolve this package's URI and read its descriptor."""
        if not self.is_ready():
            root = await self.ctx.resolve(self.uri)
            descriptor = QName(root, Constants.PACKAGE_JSON_FILE)
            if not os.path.isfile(descriptor.uri()):
                raise ResolutionError(f"No {Constants.PACKAGE_JSON_FILE} in {root}.")
            self.configure(descriptor.absolute(), load_descriptor(descriptor.uri()))
            logger.debug("Configured %s as %s", self, self.name)
        return self

    def init_sync(self) -> "Package":
        return run_sync(self.init())

    async def load(self, name: str, relative_to: Optional[QName] = None) -> Module:
        """Load module ``name`` through this package.

        Unresolved top-level names go to defined modules, then the parent
        package chain, then the context's external loader.
        """
        if not self.is_ready():
            raise ResolutionError(f"Initialize {self} before loading modules.")

        qname = self.resolve(name, relative_to)
        logger.debug("load: resolved (%s, %s) -> %s", name, relative_to, qname)

        if is_top_level(qname.ns):
            uri = qname.uri()
            if uri in self.defined:
                return self.defined[uri]
            if self.parent is not None:
                return await self.parent.load(uri)
            return await self.ctx.load_external(qname)

        if qname.ns != self.qname.ns:
            package = await self.ctx.load_package(qname.ns, self)
            return await package.load(relative_name(qname.lname))

        cached = self.modules.get(qname.lname)
        if cached is not None:
            return cached
        return await self._load(qname)

    def load_sync(self, name: str, relative_to: Optional[QName] = None) -> Module:
        return run_sync(self.load(name, relative_to))

    async def _load(self, qname: QName) -> Module:
        found = self.ctx.find_module(qname)
        if found is None:
            raise ResolutionError(f'Cannot find "{qname}".')

        # "foo" may be cached already under the variant it resolved to ("foo/index").
        cached = self.modules.get(found.lname)
        if found.lname != qname.lname and cached is not None:
            return cached

        module = Module(qname.uri(), found.uri(), self)
        self.modules[qname.lname] = self.modules[found.lname] = module
        await self.ctx.evaluate(self, found, module)
        return module

    async def run_script(self, path: str) -> Module:
        """Evaluate a file outside of name resolution (nothing is cached)."""
        stem, ext = os.path.splitext(path)
        if not self.ctx.is_registered(ext):
            raise ResolutionError(f'Unrecognized extension: "{path}".')
        if not os.path.isfile(path):
            raise ResolutionError(f'Cannot find script "{path}".')
        qname = QName(os.path.dirname(stem), os.path.basename(stem), ext)
        module = Module(qname.uri(), path, self)
        await self.ctx.evaluate(self, qname, module)
        return module

    def define(self, name: str) -> Module:
        """Declare a virtual module reachable by the top-level ``name``."""
        module = self.defined[name] = Module(name, package=self)
        return module
