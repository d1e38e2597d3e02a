"""
HueSampler

Derives a color palette from an uploaded image and serves repeated color
queries against it through short-lived sampling sessions.
"""

__version__ = "1.0.0"
