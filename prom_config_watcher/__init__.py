"""Watch a config directory, expand env placeholders, and reload Prometheus."""

__version__ = "0.1.0"
