"""
Authorization kernel: models, hierarchy, services and the audit trail.
"""
