"""Database models — re-exported so callers can import from one place.

Import from here:  from pipelinehub.models import SalesforceOpportunity, ...
Or from submodules: from pipelinehub.models.auth import User
"""

from .base import Base  # noqa: F401

# Auth & Users
from .auth import User  # noqa: F401

# Salesforce feed
from .connection import SalesforceConnection  # noqa: F401
from .opportunity import SalesforceOpportunity  # noqa: F401

# Actions awaiting sync back to Salesforce
from .actions import ActionLog, OpportunityTask  # noqa: F401
