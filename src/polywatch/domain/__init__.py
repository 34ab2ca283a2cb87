"""Domain layer - pure types and change detection."""
