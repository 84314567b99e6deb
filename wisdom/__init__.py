"""
Wisdom: a tiny fortune server.

Every TCP connection gets a freshly generated `fortune | cowsay` blob framed
as a minimal HTTP/1.1 response, after which the connection is closed.
"""

__version__ = "1.0.0"
