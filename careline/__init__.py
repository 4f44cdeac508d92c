"""Careline: consultation booking and scheduling engine."""
