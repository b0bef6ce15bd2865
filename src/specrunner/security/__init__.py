"""Path safety primitives for serving files from the document root."""

from .paths import PathBlockedError, relative_url_path, resolve_document_path

__all__ = ["PathBlockedError", "relative_url_path", "resolve_document_path"]
