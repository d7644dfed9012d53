"""
Infrastructure layer: local configuration, logging and backend clients.
"""
