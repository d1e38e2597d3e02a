"""
HueSampler Colors Module

Palette extraction tiers and color conversion helpers.
"""
