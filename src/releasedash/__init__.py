"""
releasedash - Release lifecycle tracking.

Mirrors release facts (branches, library versions, changes, CI checks and
build artifacts) from GitHub into a SQLite store that powers the release
dashboard.
"""

__version__ = "0.4.0"

# Re-export core models for convenience
from releasedash.core.releases.models import Release, ReleaseState

__all__ = ["Release", "ReleaseState", "__version__"]
