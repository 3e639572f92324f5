"""docgate: secure QR sharing and access control for document bundles."""

__version__ = "0.1.0"
