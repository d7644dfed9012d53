"""
Core layer: domain models, interfaces and backend-agnostic services.

Nothing in this layer talks to a network or imports a backend client library.
"""
