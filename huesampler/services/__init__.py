"""
HueSampler services: image normalization, palette extraction, session
storage and pixel sampling.
"""
