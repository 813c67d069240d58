"""Shared wire models."""
