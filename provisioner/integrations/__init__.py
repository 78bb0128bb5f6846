"""
Integration modules for external services.
"""

from .http_client import HttpClient, FetchError, DownloadedFile

__all__ = ["HttpClient", "FetchError", "DownloadedFile"]
