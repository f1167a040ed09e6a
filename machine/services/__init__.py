"""Machine services.

- constraint_service: hard constraint checks every proposed action passes through
- assessment_engine: risk assessments, intervention options and recommendations
- audit_service: hash-chained audit trail of every operation
"""
