"""Facade and cross-module services over the leasing modules."""
