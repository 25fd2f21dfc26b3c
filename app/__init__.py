"""
University Student Portal
REST backend for students and administrators.

Architecture:
- MongoDB: every portal entity (users, fees, library, exams, hostel,
  placements, notifications, gamification)
- JWT: stateless access and refresh tokens
- APScheduler: daily fee and library reminder sweeps
- DeepSeek AI: optional chatbot answers
"""

__version__ = "1.0.0"
