"""Shared helpers used by services and routers."""
