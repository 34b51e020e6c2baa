"""Daily timeline and duration engine for Day Log."""
