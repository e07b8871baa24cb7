"""
Blog API — a small blog-post CRUD service and its integration-test harness.

The service stores posts in a document store (MongoDB, or an in-process
memory backend for hermetic runs) and exposes them over four REST endpoints.
"""

__version__ = "0.1.0"
