"""Event bus backends."""
