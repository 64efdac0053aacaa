"""Portal Auth - token lifecycle service for the IT-service portal."""

__version__ = "1.0.0"
