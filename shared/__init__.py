"""Shared package for the webform record controller.

This package contains the storage-level definitions used by the record store,
the upload queue and the coordinator. It includes:

- Database models (models.py) - SQLAlchemy models for records, attachments,
  the autosave slot, per-survey counters and store properties
- Enums (enums.py) - Record status, outcome levels, confirmation kinds and events
- Schemas (schemas.py) - Pydantic schemas and the tagged file reference variant
- Utility functions (utils.py) - Key naming, default record names and hashing
"""
