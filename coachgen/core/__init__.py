"""
Core business logic for coaching content generation.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
or any infrastructure concerns. This separation means we can test the
cache protocol and validation rules in isolation and swap storage or
text models without touching them.
"""
