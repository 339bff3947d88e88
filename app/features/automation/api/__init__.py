"""
HTTP routes for the automation feature.
"""
