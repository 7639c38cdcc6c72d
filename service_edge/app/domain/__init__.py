"""
Per-request decision logic for content routes.
"""
