"""pydev: runs a Python script and restarts it when the files it loaded change."""

__version__ = "0.1.0"
