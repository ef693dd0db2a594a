"""Core models, configuration and verification for Media Unify."""
