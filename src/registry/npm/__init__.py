"""npm registry support."""

from .client import NpmClient, encode_name, split_path

__all__ = ["NpmClient", "encode_name", "split_path"]
