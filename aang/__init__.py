"""
AAng Logistics authentication and session service.
"""
