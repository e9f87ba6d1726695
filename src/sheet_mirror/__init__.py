"""Mirror Google Sheets file references onto an FTP tree."""

__version__ = "1.0.0"
