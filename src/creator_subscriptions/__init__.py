"""
Subscription, quota, credit and usage-session accounting for the Creator platform
"""

__version__ = "0.1.0"
