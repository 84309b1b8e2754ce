"""Pydantic schemas for trigger configurations."""
