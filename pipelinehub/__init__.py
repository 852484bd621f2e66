"""Pipeline Hub — Salesforce opportunity ingestion and pipeline views."""

__version__ = "0.4.0"
