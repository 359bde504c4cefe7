"""
Post board service.

Accepts posts (a name, a body and an optional image), stores images in a
blob store and post records in a SQL database, and lists stored posts.
"""
