"""Lab server translating Mongo shell queries into safe find/aggregate calls."""

__version__ = "1.0.0"
