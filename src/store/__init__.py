"""Relational store layer.

This module resolves, inserts, updates, and stages snapshot records in
the DevMine database. It also manages the constraints around bulk loads.
"""
