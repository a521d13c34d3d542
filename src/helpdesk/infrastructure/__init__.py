"""
Infrastructure Package
======================

Cross-module technical infrastructure (database engine and sessions).
"""
