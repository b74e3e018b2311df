"""
FilingDesk - Background Tasks Package

Celery tasks for scheduled workflow reporting.
"""
