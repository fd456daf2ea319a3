"""cfgsync -- keep one authoritative copy of agent configuration resources
and project it into several client applications."""

__version__ = "0.4.0"
