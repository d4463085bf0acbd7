"""
Backend Scripts Module

Utility scripts for database setup and maintenance.

Available scripts:
    - seed_data.py: Creates the default categories and the bootstrap admin

Usage:
    python -m scripts.seed_data
"""
