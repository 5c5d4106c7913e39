"""Parser package - Structures raw vhost text for the editors.

Parsers do NOT run commands or touch files - they only classify lines.
"""

from svp.parser.block_scanner import ConfigBlockScanner, ScanResult, has_ssl_listener

__all__ = ["ConfigBlockScanner", "ScanResult", "has_ssl_listener"]
