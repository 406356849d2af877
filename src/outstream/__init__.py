"""
outstream: One write-and-close interface for every output destination.

Resolve a ``scheme://argument`` string to a sink and write bytes to it. The
listening schemes (``tcp-listen``, ``unix-listen``, ``ws-listen``,
``http-listen``) broadcast every write to all connected consumers.
"""

__version__ = "0.1.0"
