"""
x-live-relay
Relays live broadcast chat into a local comment-display application
"""

__version__ = "0.1.0"
