"""
FastAPI application layer for StudyFlow.

This module provides HTTP endpoints around the flow pipeline, letting frontend
applications chat, upload documents, images and audio, and get back answers,
flashcards, quizzes, cartoons and transcripts.
"""
