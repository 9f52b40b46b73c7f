"""StudyFlow: schema-typed generative-AI flows for study material."""

__version__ = "1.0.0"
