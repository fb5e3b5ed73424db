"""
Authentication package: bearer JWT verification, password hashing, and the
email-code password-reset flow.
"""
