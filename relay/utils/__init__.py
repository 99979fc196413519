"""
Shared utilities: logging, HTTP clients and scheduling
"""
