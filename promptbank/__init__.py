"""promptbank: a reusable prompt library that syncs across devices and teams."""

__version__ = "0.9.0"
