"""
permsync.storage - Database access

SQLAlchemy gateway for reading and writing permission tables.
"""
