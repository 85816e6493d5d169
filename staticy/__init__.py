"""A static file server with optional directory-listing suppression."""

__version__ = "0.1.0"
