"""Shared infrastructure: exceptions, HTTP retry and date handling."""
