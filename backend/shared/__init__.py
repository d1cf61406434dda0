"""
Shared configuration, database access and error types.
"""
