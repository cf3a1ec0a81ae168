"""
Command line interface for leadtemplates.
"""
