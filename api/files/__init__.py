"""
Files API - file attachments stored in a bucket with metadata in the database.
"""
