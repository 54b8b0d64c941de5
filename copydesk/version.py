"""
Version information for Copydesk Admin.

This file is the single source of truth for version numbers.
"""

__version__ = "1.2.0"
__version_info__ = (1, 2, 0)

# Build metadata (set by CI/CD or manually)
BUILD_DATE = "2026-10-18"
GIT_COMMIT = None
