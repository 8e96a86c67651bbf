"""
Credentia: credential definition loading, merging, storage and secret resolution.

Definitions come from configuration and from an optional persistent store,
are merged per type, diffed against what was last loaded, and parsed into
live credentials. Stored definitions are versioned and guarded by ETags;
secret references inside them are resolved through pluggable engines.
"""

__version__ = "0.1.0"
