"""Ingestion helpers.

Everything that turns upstream telemetry JSON into typed readings lives
here; the analytics and cache layers only ever see validated models.
"""
