"""Components for relaying memcached binary-protocol requests: parsing, layering, dispatch and client I/O."""

__version__ = "0.1.0"