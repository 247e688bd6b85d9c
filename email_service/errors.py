"""Exceptions raised inside email-service."""

from __future__ import annotations


class ConnectivityError(Exception):
    """MongoDB or Kafka could not be reached at startup."""


class EnrichmentError(Exception):
    """An event references a user that no longer exists."""
