"""
Copydesk Admin - Flask + HTMX dashboard for the photocopy-request office.

Provides server-paginated, sortable tables for requesters, approvers,
authors, publishers, books and print requests, relation pickers with
debounced search, and Excel report downloads proxied from the backend.
"""

from .version import __version__

__all__ = ["__version__"]
