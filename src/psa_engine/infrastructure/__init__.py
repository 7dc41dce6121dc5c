"""
Infrastructure Module
======================

Cross-cutting infrastructure shared by the bounded contexts (database).
"""
