"""
salonbook - appointment availability engine for salon booking clients.
"""

__version__ = "0.1.0"
