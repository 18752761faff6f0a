"""Clinic queue service: tickets, queue sessions and session history."""

__version__ = "1.0.0"
