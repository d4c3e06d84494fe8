"""Core settlement logic"""
