"""
Authorization core.

Role hierarchy, permission tokens, the role permission table, the pure
permission evaluator and the per-request gate that composes them with
claims resolution.
"""
