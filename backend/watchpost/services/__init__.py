"""
Security services: event logging, lockout, MFA, alerting, monitoring and reporting.
"""
