"""
FastAPI dependencies for request processing.

Dependencies provide the shared, read-only services every endpoint needs:
the model manager, the flow executor and the flow catalogue.
"""
