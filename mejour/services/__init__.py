"""Application services: sync ownership, follow list, display names."""
