"""Application package for the LearnHub e-learning backend.

This package exposes the service, repository and model modules used by
the FastAPI application. Courses, chapters, quizzes and comments are
stored in independent tables and kept consistent by the services in
`learnhub.services`.
"""
