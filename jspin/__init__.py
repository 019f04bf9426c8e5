"""
Resolve bare package names to CDN URLs for browser ``import`` statements.

Resolutions are persisted in a lock file next to the project configuration
and mirrored into the browser import map, so repeated builds are
deterministic and work offline once every package has been resolved.
"""

__version__ = "0.1.0"
