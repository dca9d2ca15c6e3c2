"""
Job Tracker

Job-application tracking core: match scoring, job review gating, the
application lifecycle and scraping session orchestration.
"""

__version__ = "0.1.0"
__author__ = "Job Tracker Team"
