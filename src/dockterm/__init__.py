"""dockterm — an interactive terminal session in a throwaway container."""

__version__ = "0.1.0"
