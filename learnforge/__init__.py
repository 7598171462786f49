"""
learnforge
==========

Learning-enforcement core: skip and failure consequences, study debt,
learner identity, remediation and inactivity checks over an async
SQLAlchemy store.
"""

__version__ = "0.1.0"
