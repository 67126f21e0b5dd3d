"""Utility helpers for the engine."""

from .fileio import read_document, read_text_file, read_yaml_file
from .code import iter_document_files

__all__ = [
    "read_document",
    "read_yaml_file",
    "read_text_file",
    "iter_document_files",
]
