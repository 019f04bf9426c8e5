"""
Persistence for the two JSON documents jspin keeps next to a project.

This package is responsible for:
* The narrow async file interface and its local, atomic implementation.
* Loading and saving the package lock (``<config>.lock``).
* Loading and saving the browser import map.
* Serializing writers to each document with a per-file ``asyncio.Lock``.
"""
