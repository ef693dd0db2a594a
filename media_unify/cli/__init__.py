"""Command-line interface for Media Unify."""
