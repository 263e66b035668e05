"""Infrastructure adapters (encryption)."""
