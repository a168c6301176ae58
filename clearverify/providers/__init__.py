"""Payer connection profiles."""

from .directory import ProviderDirectory, default_directory

__all__ = [
    "ProviderDirectory",
    "default_directory",
]
