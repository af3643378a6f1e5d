"""Qualified names, package descriptors and module resolution."""
