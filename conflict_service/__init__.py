"""
Conflict Service - Conflict of Interest Detection for Law Firms
===============================================================

A standalone engine that scans the historical case corpus for:
1. Direct opposition and position switches between parties
2. Lawyer-side conflicts through shared reviewer assignments
3. Related-entity and cross-entity links (founders, directors, affiliates)

Every check is written once to the audit store and never mutated.
"""

__version__ = "1.0.0"
