"""Process-level configuration helpers (logging)."""
