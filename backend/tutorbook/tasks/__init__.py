"""Celery tasks for the booking engine."""
