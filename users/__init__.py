"""
Users: read-only user directory (list users, look up by username).
"""
