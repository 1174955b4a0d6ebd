"""Snapshot ingestion pipeline.

This module reads dated GHTorrent snapshot files and decodes their
framed BSON documents. It drives the store layer one file at a time.
"""
