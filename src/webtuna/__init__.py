"""
webtuna: TCP tunnel multiplexing many connections over one channel.
"""

__version__ = "0.1.0"
