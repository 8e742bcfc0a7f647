"""
Blob Transfer Service.
Chunked stage-and-commit uploads into a block store, and streaming downloads.
"""

__version__ = "1.0.0"
