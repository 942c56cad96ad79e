"""Application package for the EduCMS records backend.

This package exposes the model, repository, unit of work and service
modules behind the student, announcement and document records. It is
intentionally lightweight; individual modules contain the concrete
implementations and documentation.
"""
