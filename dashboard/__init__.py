"""JSON API exposing the reportability engine."""
