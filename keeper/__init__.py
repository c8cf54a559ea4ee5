"""Book catalog search, normalization and storage."""
