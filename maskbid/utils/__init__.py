"""Logging utilities"""
