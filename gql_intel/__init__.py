"""
gql-intel
Recovers GraphQL operations from web-application JavaScript and live traffic
"""

__version__ = "0.1.0"
