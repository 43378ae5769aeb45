"""S3-compatible HTTP gateway in front of a single FTP server."""

__version__ = "0.1.0"
