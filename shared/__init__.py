"""Shared package for knowledge upload."""
