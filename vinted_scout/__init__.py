"""
Vinted Scout

Pulls listings from the Vinted catalogue API, scores their relevance against
free-text queries or persisted price alerts, and records idempotent alert
matches.
"""

__version__ = "0.1.0"
__author__ = "Vinted Scout Team"
