"""Utilities package for the Belt Tracker application."""
