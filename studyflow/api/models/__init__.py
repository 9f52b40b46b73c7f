"""
Pydantic models for API request/response schemas.

These models define the shape of data that flows between your frontend and backend.
They are separate from your internal pipeline types to maintain clear API boundaries.
"""