"""Core module - settings and observability shared by parsers, engine and validator.

Nothing in here knows about a particular grain or document layout.
"""

__version__ = "1.0.0"
