"""Adapters that connect the rotation runtime to concrete display surfaces."""
