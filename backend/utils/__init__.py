"""
Logging and tracing helpers
"""
