"""
PACSView Server - DICOM metadata index and image rendering service

This package scans a DICOM storage tree, keeps a volatile in-memory
Patient/Study/Series/Instance index, and serves rendered images,
thumbnails, raw files and tag listings over HTTP.
"""

__version__ = "1.0.0"
__author__ = "PACSView Team"
