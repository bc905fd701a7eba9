"""Operator utilities that write reference data (tenant taxonomy seeding)."""
