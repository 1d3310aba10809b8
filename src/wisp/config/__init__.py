"""
Configuration language: parsing, definitions and loading.
"""
