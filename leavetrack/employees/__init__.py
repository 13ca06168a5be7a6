"""Employees module — employee and department records and their admin operations."""
