"""
dataconnect — One contract for querying databases, files, and external APIs.
"""

__version__ = "0.4.0"
