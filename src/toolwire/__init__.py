"""toolwire — stdio tool-server client for cooperative host loops."""

__version__ = "0.3.0"
