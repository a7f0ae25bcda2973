"""JSON API surface over the technical analysis service."""
