"""Trending media (GIF) lookups via the Klipy API."""
