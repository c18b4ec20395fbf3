"""One-off data loading utilities (pattern seeding)."""
