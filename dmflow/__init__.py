"""
dmflow - resumable DM automation flows for Instagram accounts
"""
__version__ = "1.0.0"
