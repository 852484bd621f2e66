"""
services/ — Business logic behind the routers.

Ingestion, read views, forecasting, AI agents and the Salesforce
action queue. Nothing in here knows about HTTP.
"""
