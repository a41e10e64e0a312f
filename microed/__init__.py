"""Settings, colorschemes, runtime files, plugin management and shell helpers for a terminal text editor."""

__version__ = "0.1.0"