"""
Celery tasks.

Task modules are registered on the Celery app through conf.imports in
files_control.celery_app rather than imported here.
"""
