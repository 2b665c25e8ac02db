"""
Reconciliation HTTP endpoints
"""
