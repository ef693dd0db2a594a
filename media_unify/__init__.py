"""
Media Unify - one-shot consolidation of legacy image and document stores.

Moves image and document records into a single unified media table and the
matching upload files into one shared directory, with backups, rollback and
a post-migration verification pass.
"""

__version__ = "0.1.0"
__author__ = "Media Unify Team"
